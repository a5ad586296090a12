# Overview: Service-layer operations for customer loyalty points; earn on collection, redeem for discounts.

"""
Loyalty Points

WHY: Customers earn points when a fully paid receipt is collected and
spend them for wash discounts.

RULES:
- 1 point per LOYALTY_SPEND_PER_POINT spent, times the tier multiplier
- Tier follows lifetime points (never decreases on redemption)
- Redemption: minimum 100 points, 100 points = 10000 discount
- Every movement writes a LoyaltyTransaction with the balance after it
"""

from __future__ import annotations

from decimal import Decimal, ROUND_FLOOR

from flask import current_app

from ..extensions import db
from ..models import Customer, LoyaltyAccount, LoyaltyTransaction
from ..money import D, round_money
from ..validation import ValidationError, ConflictError, NotFoundError
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# TIERS (CONSTANTS)
# =============================================================================

TIER_BRONZE = "Bronze"
TIER_SILVER = "Silver"
TIER_GOLD = "Gold"
TIER_PLATINUM = "Platinum"

TIERS = [
    {"name": TIER_BRONZE, "min_points": 0, "multiplier": Decimal("1.0")},
    {"name": TIER_SILVER, "min_points": 500, "multiplier": Decimal("1.2")},
    {"name": TIER_GOLD, "min_points": 2000, "multiplier": Decimal("1.5")},
    {"name": TIER_PLATINUM, "min_points": 5000, "multiplier": Decimal("2.0")},
]

MIN_REDEEM_POINTS = 100
POINTS_PER_REWARD = 100
DISCOUNT_PER_REWARD = Decimal("10000")

TYPE_EARNED = "earned"
TYPE_REDEEMED = "redeemed"


def tier_for(lifetime_points: int) -> dict:
    current = TIERS[0]
    for tier in TIERS:
        if lifetime_points >= tier["min_points"]:
            current = tier
    return current


def next_tier_for(lifetime_points: int) -> dict | None:
    for tier in TIERS:
        if lifetime_points < tier["min_points"]:
            return tier
    return None


def list_tiers() -> list[dict]:
    return [
        {"name": t["name"], "min_points": t["min_points"], "multiplier": str(t["multiplier"])}
        for t in TIERS
    ]


def points_for_amount(amount, multiplier: Decimal = Decimal("1")) -> int:
    spend_per_point = D(current_app.config.get("LOYALTY_SPEND_PER_POINT", 20000))
    raw = D(amount) / spend_per_point * multiplier
    return int(raw.to_integral_value(rounding=ROUND_FLOOR))


def _get_or_create_account(customer_id: int, *, lock: bool = False) -> LoyaltyAccount:
    query = db.session.query(LoyaltyAccount).filter_by(customer_id=customer_id)
    if lock:
        query = lock_for_update(query)
    account = query.first()
    if account is None:
        account = LoyaltyAccount(customer_id=customer_id, current_points=0, lifetime_points=0, tier=TIER_BRONZE)
        db.session.add(account)
        db.session.flush()
    return account


def _require_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


# =============================================================================
# OPERATIONS
# =============================================================================

def award_points_on_collection(customer_id: int, order_id: int | None, amount, created_by: str | None = None) -> dict:
    """
    Award points for a collected, fully paid receipt.

    Args:
        customer_id: Receipt customer
        order_id: First line of the receipt
        amount: Receipt total

    Returns:
        dict with points_earned, current_points, lifetime_points, tier, tier_upgraded
    """
    def _op():
        _require_customer(customer_id)
        account = _get_or_create_account(customer_id, lock=True)
        previous_tier = account.tier
        multiplier = tier_for(account.lifetime_points)["multiplier"]
        earned = points_for_amount(amount, multiplier)

        if earned > 0:
            account.current_points += earned
            account.lifetime_points += earned
            account.tier = tier_for(account.lifetime_points)["name"]
            db.session.add(LoyaltyTransaction(
                customer_id=customer_id,
                order_id=order_id,
                transaction_type=TYPE_EARNED,
                points=earned,
                balance_after=account.current_points,
                amount=round_money(amount),
                description="Points earned on collection",
                created_by=created_by,
            ))
        db.session.commit()

        return {
            "points_earned": earned,
            "current_points": account.current_points,
            "lifetime_points": account.lifetime_points,
            "tier": account.tier,
            "tier_upgraded": account.tier != previous_tier,
        }

    return run_with_retry(_op)


def redeem_points(customer_id: int, points: int, *, order_id: int | None = None, created_by: str | None = None) -> dict:
    """
    Spend points for a discount.

    Raises:
        ValidationError: Below the minimum redeemable amount
        ConflictError: Not enough points
    """
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise ValidationError("points must be a positive integer")
    if points < MIN_REDEEM_POINTS:
        raise ValidationError(f"Minimum {MIN_REDEEM_POINTS} points required to redeem (worth {DISCOUNT_PER_REWARD})")

    def _op():
        _require_customer(customer_id)
        account = _get_or_create_account(customer_id, lock=True)
        if account.current_points < points:
            raise ConflictError(f"Insufficient points. Current balance: {account.current_points} points")

        discount = round_money(DISCOUNT_PER_REWARD * (points // POINTS_PER_REWARD))
        account.current_points -= points
        db.session.add(LoyaltyTransaction(
            customer_id=customer_id,
            order_id=order_id,
            transaction_type=TYPE_REDEEMED,
            points=-points,
            balance_after=account.current_points,
            amount=discount,
            description=f"Redeemed {points} points",
            created_by=created_by,
        ))
        db.session.commit()
        return {
            "points_redeemed": points,
            "discount_amount": str(discount),
            "current_points": account.current_points,
        }

    return run_with_retry(_op)


def get_loyalty_summary(customer_id: int) -> dict:
    _require_customer(customer_id)
    account = db.session.query(LoyaltyAccount).filter_by(customer_id=customer_id).first()
    current = account.current_points if account else 0
    lifetime = account.lifetime_points if account else 0
    tier = tier_for(lifetime)
    upcoming = next_tier_for(lifetime)

    history = (
        db.session.query(LoyaltyTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc())
        .limit(20)
        .all()
    )
    return {
        "customer_id": customer_id,
        "current_points": current,
        "lifetime_points": lifetime,
        "tier": tier["name"],
        "multiplier": str(tier["multiplier"]),
        "next_tier": upcoming["name"] if upcoming else None,
        "points_to_next_tier": max(0, upcoming["min_points"] - lifetime) if upcoming else 0,
        "transactions": [t.to_dict() for t in history],
    }
