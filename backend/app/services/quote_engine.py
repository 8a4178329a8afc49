from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Optional

from .crew_sizing import crew_size_for_price
from .pricing_catalog import PricingCatalog

logger = logging.getLogger(__name__)

# Categories whose pickups usually need on-site disassembly
DISASSEMBLY_CATEGORIES = frozenset({"장롱", "침대", "소파", "장식장", "거실장"})

ESTIMATE_UNIT = 10_000
_MAX_MARKUP = Decimal("1.15")
_DISASSEMBLY_MARKUP = Decimal("0.10")


@dataclass(frozen=True)
class QuoteLineItem:
    category: str
    name: str
    display_name: str
    quantity: int
    unit_price: int
    unit_volume: float
    verified: bool = True

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.quantity

    @property
    def volume(self) -> float:
        return self.unit_volume * self.quantity

    def as_snapshot(self) -> dict[str, Any]:
        """Shape stored on the booking row."""
        return {
            "category": self.category,
            "name": self.name,
            "display_name": self.display_name,
            "price": self.unit_price,
            "quantity": self.quantity,
            "loading_cube": self.unit_volume,
        }


@dataclass(frozen=True)
class BreakdownRow:
    name: str
    quantity: int
    unit_price: int
    subtotal: int


@dataclass
class QuoteResult:
    items_total: int
    crew_size: int
    crew_price: int
    ladder_price: int
    total_price: int
    estimate_min: int
    estimate_max: int
    total_volume: float
    breakdown: list[BreakdownRow] = field(default_factory=list)
    items: list[QuoteLineItem] = field(default_factory=list)


def _read(item: Any, key: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(key, default)
    return getattr(item, key, default)


def enforce_server_items(items: Iterable[Any], catalog: PricingCatalog) -> list[QuoteLineItem]:
    """Replace caller-supplied prices and volumes with catalog values.

    Items missing from the catalog are kept with quantity intact but priced
    at zero; each one is logged so tampering or stale clients can be audited.
    """
    enforced: list[QuoteLineItem] = []
    for item in items:
        category = str(_read(item, "category", "") or "")
        name = str(_read(item, "name", "") or "")
        quantity = int(_read(item, "quantity", 0) or 0)
        entry = catalog.item(category, name)
        if entry is None:
            logger.warning(
                "Unverified catalog item priced at zero",
                extra={
                    "category": category,
                    "item_name": name,
                    "client_price": _read(item, "price"),
                },
            )
            enforced.append(
                QuoteLineItem(
                    category=category,
                    name=name,
                    display_name=name,
                    quantity=quantity,
                    unit_price=0,
                    unit_volume=0.0,
                    verified=False,
                )
            )
            continue
        enforced.append(
            QuoteLineItem(
                category=category,
                name=name,
                display_name=entry.display_name or name,
                quantity=quantity,
                unit_price=entry.unit_price,
                unit_volume=entry.unit_volume,
            )
        )
    return enforced


def _floor_to_unit(amount: int) -> int:
    return (amount // ESTIMATE_UNIT) * ESTIMATE_UNIT


def _ceil_to_unit(amount: int) -> int:
    return -(-amount // ESTIMATE_UNIT) * ESTIMATE_UNIT


def calculate_quote(
    catalog: PricingCatalog,
    area: str,
    items: Iterable[Any],
    need_ladder: bool,
    ladder_type: Optional[str] = None,
    ladder_hours: Optional[int] = None,
    crew_size_override: Optional[int] = None,
) -> QuoteResult:
    """Price a pickup request against ``catalog``.

    Never raises for type-valid input: unknown items, areas and ladder tiers
    degrade to zero-valued components so a quote is always returned.
    """
    lines = enforce_server_items(items, catalog)

    items_total = sum(line.subtotal for line in lines)
    disassembly_subtotal = sum(
        line.subtotal for line in lines if line.category in DISASSEMBLY_CATEGORIES
    )
    total_volume = round(sum(line.volume for line in lines), 4)

    crew_size = crew_size_override or crew_size_for_price(items_total)

    area_tier = catalog.area(area)
    if area_tier is None:
        logger.warning("Unknown service area, crew price set to zero", extra={"area": area})
        crew_price = 0
        base_crew_price = 0
    else:
        crew_price = area_tier.price_for_crew(crew_size)
        base_crew_price = area_tier.price1

    ladder_price = 0
    if need_ladder:
        tier = catalog.ladder_tier(ladder_type)
        if tier is None:
            logger.warning("Unknown ladder tier", extra={"ladder_type": ladder_type})
        else:
            ladder_price = tier.price_for_hours(ladder_hours)

    total_price = items_total + crew_price + ladder_price

    # Low end always assumes the one-person crew rate
    estimate_min = _floor_to_unit(items_total + base_crew_price + ladder_price)

    raw_max = (
        Decimal(items_total) * _MAX_MARKUP
        + Decimal(disassembly_subtotal) * _DISASSEMBLY_MARKUP
        + crew_price
        + ladder_price
    )
    estimate_max = _ceil_to_unit(int(raw_max.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))

    breakdown = [
        BreakdownRow(
            name=f"{line.category} - {line.name}",
            quantity=line.quantity,
            unit_price=line.unit_price,
            subtotal=line.subtotal,
        )
        for line in lines
    ]

    return QuoteResult(
        items_total=items_total,
        crew_size=crew_size,
        crew_price=crew_price,
        ladder_price=ladder_price,
        total_price=total_price,
        estimate_min=estimate_min,
        estimate_max=estimate_max,
        total_volume=total_volume,
        breakdown=breakdown,
        items=lines,
    )
