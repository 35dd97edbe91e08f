# backend/stockflow/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockflow.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Reorder threshold used when a (product, branch) pair has no stock level row yet
    STOCKFLOW_DEFAULT_MIN_STOCK = int(os.environ.get("STOCKFLOW_DEFAULT_MIN_STOCK", "5"))

    STOCKFLOW_LOG_LEVEL = os.environ.get("STOCKFLOW_LOG_LEVEL", "INFO")

    # Attempts for operations that hit optimistic-lock conflicts
    STOCKFLOW_RETRY_ATTEMPTS = int(os.environ.get("STOCKFLOW_RETRY_ATTEMPTS", "3"))
