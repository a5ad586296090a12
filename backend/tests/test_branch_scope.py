import pytest

from laundrypos.models import Order
from laundrypos.services.branch_scope_service import (
    Actor, BranchScope, BranchScopeError, FEATURE_CASH_MANAGEMENT,
    branch_has_feature, ensure_row_in_scope, resolve_scope, set_branch_feature,
)


class TestResolveScope:
    def test_fixed_branch_actor(self):
        scope = resolve_scope(Actor(role="cashier", fixed_branch_id=3))
        assert scope == BranchScope(branch_id=3)

    def test_pin_is_ignored_for_non_admins(self):
        scope = resolve_scope(Actor(role="manager", fixed_branch_id=3, pinned_branch_id=7))
        assert scope.branch_id == 3

    def test_admin_unpinned_sees_all(self):
        scope = resolve_scope(Actor(role="admin"))
        assert scope.all_branches is True
        assert scope.branch_id is None

    def test_pinned_admin_behaves_like_fixed_actor(self):
        pinned = resolve_scope(Actor(role="admin", pinned_branch_id=7, fixed_branch_id=1))
        assert pinned == resolve_scope(Actor(role="cashier", fixed_branch_id=7))

    def test_actor_without_branch(self):
        scope = resolve_scope(Actor(role="processor"))
        assert scope.branch_id is None and scope.all_branches is False
        with pytest.raises(BranchScopeError):
            scope.require_branch()

    def test_unpinned_admin_cannot_write(self):
        with pytest.raises(BranchScopeError):
            resolve_scope(Actor(role="admin")).require_branch()


class TestActorLabel:
    def test_prefers_name_then_id_then_role(self):
        assert Actor(role="cashier", name="Neema", id=4).label == "Neema"
        assert Actor(role="cashier", id=4).label == "user:4"
        assert Actor(role="cashier").label == "cashier"


def test_query_filters(db_session, customer, branch_a, branch_b):
    for branch_id in (branch_a.id, branch_b.id, None):
        db_session.add(Order(
            receipt_number="R-1", customer_id=customer.id, branch_id=branch_id,
            item_name="Towel", quantity=1, unit_price=100, total_amount=100,
        ))
    db_session.commit()

    def count(scope, legacy=False):
        query = db_session.query(Order)
        query = scope.apply_including_legacy(query, Order.branch_id) if legacy else scope.apply(query, Order.branch_id)
        return query.count()

    assert count(BranchScope(branch_id=branch_a.id)) == 1
    assert count(BranchScope(branch_id=branch_a.id), legacy=True) == 2
    assert count(BranchScope(all_branches=True)) == 3
    assert count(BranchScope()) == 0
    assert count(BranchScope(), legacy=True) == 0


def test_ensure_row_in_scope(branch_a, branch_b):
    ensure_row_in_scope(BranchScope(branch_id=branch_a.id), branch_a.id)
    ensure_row_in_scope(BranchScope(all_branches=True), branch_b.id)
    with pytest.raises(BranchScopeError):
        ensure_row_in_scope(BranchScope(branch_id=branch_a.id), branch_b.id)
    with pytest.raises(BranchScopeError):
        ensure_row_in_scope(BranchScope(branch_id=branch_a.id), None)


def test_branch_features_default_on(db_session, branch_a):
    assert branch_has_feature(branch_a.id, FEATURE_CASH_MANAGEMENT) is True
    assert branch_has_feature(None, FEATURE_CASH_MANAGEMENT) is True

    set_branch_feature(branch_a.id, FEATURE_CASH_MANAGEMENT, False)
    assert branch_has_feature(branch_a.id, FEATURE_CASH_MANAGEMENT) is False

    set_branch_feature(branch_a.id, FEATURE_CASH_MANAGEMENT, True)
    assert branch_has_feature(branch_a.id, FEATURE_CASH_MANAGEMENT) is True


def test_unknown_feature_is_refused(db_session, branch_a):
    with pytest.raises(ValueError):
        set_branch_feature(branch_a.id, "laundromat", True)
    with pytest.raises(ValueError):
        set_branch_feature(9999, FEATURE_CASH_MANAGEMENT, True)
