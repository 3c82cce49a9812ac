# storefront/domain/pricing.py
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def discounted_price(price, discount_rate) -> Decimal:
    """Cena jednostkowa po rabacie, zaokrąglona do groszy."""
    return to_money(Decimal(str(price)) * (Decimal("1") - Decimal(str(discount_rate or 0))))


def to_minor_units(amount) -> int:
    # bramka chce kwoty w centach
    return int(to_money(amount) * 100)


def from_minor_units(amount: int) -> Decimal:
    return to_money(Decimal(int(amount)) / 100)
