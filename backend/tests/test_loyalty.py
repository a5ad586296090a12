from decimal import Decimal

import pytest

from laundrypos.models import LoyaltyAccount, LoyaltyTransaction
from laundrypos.services import loyalty_service
from laundrypos.validation import ValidationError, ConflictError, NotFoundError


@pytest.mark.parametrize("lifetime,tier", [
    (0, "Bronze"), (499, "Bronze"), (500, "Silver"), (1999, "Silver"), (2000, "Gold"), (5000, "Platinum"),
])
def test_tier_thresholds(lifetime, tier):
    assert loyalty_service.tier_for(lifetime)["name"] == tier


def test_next_tier():
    assert loyalty_service.next_tier_for(0)["name"] == "Silver"
    assert loyalty_service.next_tier_for(6000) is None


def test_points_round_down(app):
    with app.app_context():
        assert loyalty_service.points_for_amount(Decimal("39999")) == 1
        assert loyalty_service.points_for_amount(Decimal("40000")) == 2
        assert loyalty_service.points_for_amount(Decimal("100000"), Decimal("1.5")) == 7


def test_award_creates_account_and_history(db_session, customer):
    result = loyalty_service.award_points_on_collection(customer.id, None, Decimal("100000"), created_by="Cashier A")

    assert result == {
        "points_earned": 5,
        "current_points": 5,
        "lifetime_points": 5,
        "tier": "Bronze",
        "tier_upgraded": False,
    }
    entry = db_session.query(LoyaltyTransaction).one()
    assert entry.transaction_type == "earned"
    assert entry.balance_after == 5


def test_current_tier_multiplier_applies(db_session, customer):
    db_session.add(LoyaltyAccount(customer_id=customer.id, current_points=100, lifetime_points=2000, tier="Gold"))
    db_session.commit()

    result = loyalty_service.award_points_on_collection(customer.id, None, Decimal("200000"))

    assert result["points_earned"] == 15
    assert result["lifetime_points"] == 2015


def test_tier_upgrade_is_reported(db_session, customer):
    db_session.add(LoyaltyAccount(customer_id=customer.id, current_points=495, lifetime_points=495, tier="Bronze"))
    db_session.commit()

    result = loyalty_service.award_points_on_collection(customer.id, None, Decimal("200000"))

    assert result["tier"] == "Silver"
    assert result["tier_upgraded"] is True


def test_redeem(db_session, customer):
    db_session.add(LoyaltyAccount(customer_id=customer.id, current_points=250, lifetime_points=250, tier="Bronze"))
    db_session.commit()

    result = loyalty_service.redeem_points(customer.id, 200, created_by="Cashier A")

    assert result == {"points_redeemed": 200, "discount_amount": "20000.00", "current_points": 50}
    summary = loyalty_service.get_loyalty_summary(customer.id)
    assert summary["current_points"] == 50
    assert summary["lifetime_points"] == 250
    assert summary["tier"] == "Bronze"
    assert summary["points_to_next_tier"] == 250
    assert summary["transactions"][0]["points"] == -200


def test_redeem_rules(db_session, customer):
    db_session.add(LoyaltyAccount(customer_id=customer.id, current_points=150, lifetime_points=150, tier="Bronze"))
    db_session.commit()

    with pytest.raises(ValidationError):
        loyalty_service.redeem_points(customer.id, 99)
    with pytest.raises(ConflictError):
        loyalty_service.redeem_points(customer.id, 200)
    with pytest.raises(NotFoundError):
        loyalty_service.redeem_points(9999, 100)


def test_summary_without_account(db_session, customer):
    summary = loyalty_service.get_loyalty_summary(customer.id)

    assert summary["current_points"] == 0
    assert summary["tier"] == "Bronze"
    assert summary["next_tier"] == "Silver"
    assert summary["transactions"] == []
