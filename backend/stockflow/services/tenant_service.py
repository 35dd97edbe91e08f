"""
Tenant scope: every engine operation receives an explicit Scope.

WHY: org and branch are request context, not shared mutable state. Routes
build a Scope from headers (see decorators.require_scope); services and tests
construct it directly.

INVARIANTS:
1. A Scope's branch always belongs to its organization.
2. Records read through a Scope are filtered by org_id (and branch_id where
   the record is branch-owned); a foreign id is reported as not found.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Organization, Branch
from ..errors import ScopeError


@dataclass(frozen=True)
class Scope:
    org_id: int
    branch_id: int | None = None

    def require_branch(self) -> int:
        if self.branch_id is None:
            raise ScopeError("branch context required")
        return self.branch_id

    def with_branch(self, branch_id: int) -> "Scope":
        return Scope(org_id=self.org_id, branch_id=branch_id)


def resolve_scope(org_id, branch_id=None, *, require_branch: bool = True) -> Scope:
    """
    Validate raw org/branch ids and return a Scope.

    Raises ScopeError if the org is missing/unknown/inactive, or the branch is
    missing (when required), unknown, or belongs to another organization.
    """
    if org_id is None or org_id == "":
        raise ScopeError("organization context required")
    try:
        org_id = int(org_id)
    except (TypeError, ValueError):
        raise ScopeError("organization id must be an integer")

    org = db.session.get(Organization, org_id)
    if org is None or not org.is_active:
        raise ScopeError("organization not found")

    if branch_id is None or branch_id == "":
        if require_branch:
            raise ScopeError("branch context required")
        return Scope(org_id=org_id)

    try:
        branch_id = int(branch_id)
    except (TypeError, ValueError):
        raise ScopeError("branch id must be an integer")

    require_branch_in_org(branch_id, org_id)
    return Scope(org_id=org_id, branch_id=branch_id)


def require_branch_in_org(branch_id: int, org_id: int) -> Branch:
    """Core tenant isolation check for a branch id taken from client input."""
    branch = db.session.get(Branch, branch_id)
    # Don't reveal that a branch exists in another org
    if branch is None or branch.org_id != org_id:
        raise ScopeError("branch not found")
    if not branch.is_active:
        raise ScopeError("branch is inactive")
    return branch


def get_org_branches(org_id: int) -> list[Branch]:
    return (
        db.session.query(Branch)
        .filter_by(org_id=org_id, is_active=True)
        .order_by(Branch.id)
        .all()
    )
