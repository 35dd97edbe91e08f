# Overview: Error kinds raised by the stock and fulfillment services.

"""
Every rejected operation raises one of these with a human-readable message.

Routes translate them to JSON error bodies using ``status_code``; services
never return partial results for a rejected mutation (the session is rolled
back by ``run_with_retry`` before the error propagates).
"""


class StockflowError(Exception):
    """Base class for domain errors surfaced to API callers."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StockflowError):
    """Bad input: empty cart, non-positive quantity, missing reason, ..."""

    status_code = 400


class InvalidStateTransition(StockflowError):
    """Transition not allowed from the entity's current status."""

    status_code = 409


class NotFound(StockflowError):
    """Unknown product, branch, order or purchase order within the scope."""

    status_code = 404


class ScopeError(StockflowError):
    """Missing or foreign organization/branch context."""

    status_code = 400
