"""Per-property commercial configuration consumed by the quote engine.

Provides functions to load commercial settings, child pricing rules and
tax rules for a property into immutable dataclasses. All reads are
read-only; administration of these tables happens elsewhere.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from .db import fetchall, fetchone


@dataclass(frozen=True)
class CommercialSettings:
    """Commercial settings for a property.

    Attributes:
        currency: ISO currency code quotes are expressed in.
        prices_include_taxes: If True, rates are tax-inclusive and taxes
                              are extracted rather than added.
        base_occupancy: Adults included in the base rate.
        extra_adult_fee: Per-night fee for each adult above base_occupancy.
    """

    currency: str = "USD"
    prices_include_taxes: bool = False
    base_occupancy: int = 2
    extra_adult_fee: Decimal = Decimal("0")


@dataclass(frozen=True)
class ChildPricingRule:
    """Fixed per-night fee for a child whose age is in [min_age, max_age]."""

    min_age: int
    max_age: int
    fee_value: Decimal

    def matches(self, age: int) -> bool:
        return self.min_age <= age <= self.max_age


@dataclass(frozen=True)
class TaxRule:
    """Active percentage tax rule (value is a percent, e.g. 12 for 12%)."""

    name: str
    value: Decimal


@dataclass(frozen=True)
class PricingConfig:
    """Everything the quote engine needs besides rates."""

    settings: CommercialSettings = field(default_factory=CommercialSettings)
    child_rules: tuple[ChildPricingRule, ...] = ()
    tax_rules: tuple[TaxRule, ...] = ()

    @property
    def tax_rate(self) -> Decimal:
        """Sum of active percentage taxes as a fraction."""
        return sum((rule.value for rule in self.tax_rules), Decimal("0")) / Decimal("100")


DEFAULT_SETTINGS = CommercialSettings()


def load_commercial_settings(cur: PgCursor, property_id: str) -> CommercialSettings:
    """Load commercial settings, falling back to defaults when unset."""
    row = fetchone(
        cur,
        """
        SELECT currency, prices_include_taxes, base_occupancy, extra_adult_fee
        FROM property_commercial_settings
        WHERE property_id = %s
        """,
        (property_id,),
    )
    if row is None:
        return DEFAULT_SETTINGS

    currency, prices_include_taxes, base_occupancy, extra_adult_fee = row
    return CommercialSettings(
        currency=currency or DEFAULT_SETTINGS.currency,
        prices_include_taxes=bool(prices_include_taxes),
        base_occupancy=base_occupancy if base_occupancy is not None else DEFAULT_SETTINGS.base_occupancy,
        extra_adult_fee=Decimal(extra_adult_fee) if extra_adult_fee is not None else Decimal("0"),
    )


def load_child_rules(cur: PgCursor, property_id: str) -> tuple[ChildPricingRule, ...]:
    """Load child pricing rules in stored order (first match wins)."""
    rows = fetchall(
        cur,
        """
        SELECT min_age, max_age, fee_value
        FROM child_pricing_rules
        WHERE property_id = %s
        ORDER BY created_at, id
        """,
        (property_id,),
    )
    return tuple(
        ChildPricingRule(min_age=r[0], max_age=r[1], fee_value=Decimal(r[2]))
        for r in rows
    )


def load_tax_rules(cur: PgCursor, property_id: str) -> tuple[TaxRule, ...]:
    """Load active percentage tax rules."""
    rows = fetchall(
        cur,
        """
        SELECT name, value
        FROM tax_rules
        WHERE property_id = %s AND is_active AND type = 'percent'
        ORDER BY name, id
        """,
        (property_id,),
    )
    return tuple(TaxRule(name=r[0], value=Decimal(r[1])) for r in rows)


def load_pricing_config(cur: PgCursor, property_id: str) -> PricingConfig:
    """Load the full pricing configuration for a property."""
    return PricingConfig(
        settings=load_commercial_settings(cur, property_id),
        child_rules=load_child_rules(cur, property_id),
        tax_rules=load_tax_rules(cur, property_id),
    )
