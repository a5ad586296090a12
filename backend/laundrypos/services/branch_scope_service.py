# Overview: Service-layer operations for branch scoping; resolves the effective branch of a request.

"""
Branch Scope Resolver

WHY: Every money-bearing row belongs to a branch. A request acts either on
one branch or (for an unpinned admin) on all of them, and that decision is
made once per request and passed explicitly into every service call.

RULES:
- Fixed-branch actor: restricted to their branch; legacy rows (branch_id
  NULL) never match.
- Admin pinned to a branch: behaves exactly like a fixed-branch actor.
- Admin unpinned: sees and affects all branches.
- Actor with no branch at all: sees nothing.
- Cash-affecting writes need a concrete branch and fail loudly otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import false, or_

from ..extensions import db
from ..models import Branch, BranchFeature


class BranchScopeError(Exception):
    """Raised when no branch is resolvable or a row of another branch is touched."""
    pass


ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_CASHIER = "cashier"
ROLE_PROCESSOR = "processor"

VALID_ROLES = [ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_PROCESSOR]

FEATURE_CASH_MANAGEMENT = "cash_management"
FEATURE_COLLECTION = "collection"
FEATURE_LOYALTY = "loyalty"

KNOWN_FEATURES = [FEATURE_CASH_MANAGEMENT, FEATURE_COLLECTION, FEATURE_LOYALTY]


@dataclass(frozen=True)
class Actor:
    """Already-authenticated caller as supplied by the identity collaborator."""
    role: str
    name: str | None = None
    id: int | None = None
    fixed_branch_id: int | None = None
    pinned_branch_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def label(self) -> str:
        return self.name or (f"user:{self.id}" if self.id is not None else self.role)


@dataclass(frozen=True)
class BranchScope:
    """
    Effective branch of one request.

    branch_id set: act on that branch only.
    all_branches: unpinned admin.
    Neither: no branch resolvable (matches nothing).
    """
    branch_id: int | None = None
    all_branches: bool = False

    def apply(self, query, column):
        """Restrict `query` to rows whose `column` is inside this scope."""
        if self.all_branches:
            return query
        if self.branch_id is None:
            return query.filter(false())
        return query.filter(column == self.branch_id)

    def apply_including_legacy(self, query, column):
        """Like apply(), but legacy rows with no branch also match. Expenses only."""
        if self.all_branches:
            return query
        if self.branch_id is None:
            return query.filter(false())
        return query.filter(or_(column == self.branch_id, column.is_(None)))

    def includes(self, branch_id: int | None) -> bool:
        if self.all_branches:
            return True
        return self.branch_id is not None and branch_id == self.branch_id

    def require_branch(self) -> int:
        """Concrete branch id for writes; never falls back to all branches."""
        if self.branch_id is None:
            if self.all_branches:
                raise BranchScopeError("Select a branch before performing this operation")
            raise BranchScopeError("No branch assigned to this user")
        return self.branch_id


def resolve_scope(actor: Actor) -> BranchScope:
    """
    Effective branch for an actor.

    Only admins may pin; a pin sent by anyone else is ignored and their
    fixed branch applies.
    """
    if actor.is_admin:
        if actor.pinned_branch_id is not None:
            return BranchScope(branch_id=actor.pinned_branch_id)
        return BranchScope(all_branches=True)
    return BranchScope(branch_id=actor.fixed_branch_id)


def ensure_row_in_scope(scope: BranchScope, branch_id: int | None, *, what: str = "Record") -> None:
    """Raise BranchScopeError when a concrete row lies outside the scope."""
    if not scope.includes(branch_id):
        raise BranchScopeError(f"{what} belongs to another branch")


def get_branch(branch_id: int) -> Branch | None:
    return db.session.query(Branch).filter_by(id=branch_id).first()


def branch_has_feature(branch_id: int | None, feature_key: str) -> bool:
    """
    Whether a branch has a capability enabled. Missing rows mean enabled.

    No branch (unpinned admin) is always allowed.
    """
    if branch_id is None:
        return True
    row = db.session.query(BranchFeature).filter_by(branch_id=branch_id, feature_key=feature_key).first()
    return True if row is None else bool(row.is_enabled)


def set_branch_feature(branch_id: int, feature_key: str, enabled: bool) -> BranchFeature:
    if feature_key not in KNOWN_FEATURES:
        raise ValueError(f"Unknown feature: {feature_key}. Must be one of {KNOWN_FEATURES}")
    if get_branch(branch_id) is None:
        raise ValueError(f"Branch {branch_id} not found")
    row = db.session.query(BranchFeature).filter_by(branch_id=branch_id, feature_key=feature_key).first()
    if row is None:
        row = BranchFeature(branch_id=branch_id, feature_key=feature_key, is_enabled=enabled)
        db.session.add(row)
    else:
        row.is_enabled = enabled
    db.session.commit()
    return row


def create_branch(name: str, code: str | None = None, phone: str | None = None) -> Branch:
    if not name or not name.strip():
        raise ValueError("Branch name is required")
    branch = Branch(name=name.strip(), code=code, phone=phone)
    db.session.add(branch)
    db.session.commit()
    return branch
