# Overview: Decimal money helpers; every aggregation step rounds to cents.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Sequence

Money = Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# General comparison tolerance for paid/total relations
TOLERANCE = Decimal("0.01")

# Receipt-level payment matching (sum of several rounded lines)
RECEIPT_MATCH_TOLERANCE = Decimal("0.02")


def D(x) -> Money:
    if isinstance(x, Decimal):
        return x
    if isinstance(x, bool):
        raise InvalidOperation(f"Not a money value: {x!r}")
    return Decimal(str(x if x is not None else "0"))


def round_money(x) -> Money:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable) -> Money:
    """Sum then round; None entries count as zero."""
    total = ZERO
    for value in values:
        if value is not None:
            total += D(value)
    return round_money(total)


def to_string_money(x) -> str | None:
    if x is None:
        return None
    return str(round_money(x))


def to_cents(x) -> int:
    return int(round_money(x) * 100)


def from_cents(cents: int) -> Money:
    return round_money(Decimal(cents) / 100)


def allocate_proportionally(totals: Sequence, amount) -> list[Money]:
    """
    Split `amount` across lines in proportion to each line total.

    Works in whole cents (largest remainder): the parts always add up to
    exactly `amount` and no part exceeds its own line total. Amounts at or
    above the sum of totals fill every line.
    """
    total_cents = [to_cents(t) for t in totals]
    grand = sum(total_cents)
    amount_cents = to_cents(amount)

    if amount_cents <= 0 or grand <= 0:
        return [ZERO for _ in total_cents]
    if amount_cents >= grand:
        return [from_cents(c) for c in total_cents]

    shares = []
    remainders = []
    for idx, line_cents in enumerate(total_cents):
        quotient, remainder = divmod(amount_cents * line_cents, grand)
        shares.append(quotient)
        remainders.append((remainder, idx))

    leftover = amount_cents - sum(shares)
    for remainder, idx in sorted(remainders, key=lambda item: (-item[0], item[1])):
        if leftover <= 0:
            break
        if remainder and shares[idx] < total_cents[idx]:
            shares[idx] += 1
            leftover -= 1

    return [from_cents(c) for c in shares]
