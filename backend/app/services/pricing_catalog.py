"""Read-only pricing reference data.

``PricingCatalog`` is an immutable snapshot of the item catalog, the area
crew rates and the ladder-truck tiers. The quote engine only ever prices
against a snapshot, so a request sees one consistent set of tables even if
an operator edits them mid-flight.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from sqlalchemy.orm import Session

from .. import models


@dataclass(frozen=True)
class CatalogItem:
    category: str
    name: str
    display_name: str
    unit_price: int
    unit_volume: float


@dataclass(frozen=True)
class AreaTier:
    area_name: str
    price1: int
    price2: int
    price3: int

    def price_for_crew(self, crew_size: int) -> int:
        if crew_size <= 1:
            return self.price1
        if crew_size == 2:
            return self.price2
        return self.price3


@dataclass(frozen=True)
class LadderTier:
    tier_name: str
    # (duration label, price) ordered by billed hour bucket 0..N
    durations: tuple[tuple[str, int], ...]

    def price_for_hours(self, hours: Optional[int]) -> int:
        """Return the price for hour bucket ``hours``; the base rate when out of range."""
        if not self.durations:
            return 0
        if hours is not None and 0 <= hours < len(self.durations):
            return self.durations[hours][1]
        return self.durations[0][1]


@dataclass(frozen=True)
class PricingCatalog:
    items: Mapping[tuple[str, str], CatalogItem] = field(default_factory=dict)
    areas: Mapping[str, AreaTier] = field(default_factory=dict)
    ladder_tiers: Mapping[str, LadderTier] = field(default_factory=dict)

    def item(self, category: str, name: str) -> Optional[CatalogItem]:
        return self.items.get((category, name))

    def area(self, name: str) -> Optional[AreaTier]:
        return self.areas.get(name)

    def ladder_tier(self, name: Optional[str]) -> Optional[LadderTier]:
        if not name:
            return None
        return self.ladder_tiers.get(name)

    @classmethod
    def build(
        cls,
        items: Iterable[CatalogItem],
        areas: Iterable[AreaTier],
        ladder_rows: Iterable[tuple[str, str, int, int]],
    ) -> "PricingCatalog":
        """Assemble a catalog; ``ladder_rows`` are (tier, duration label, price, sort order)."""
        grouped: dict[str, list[tuple[int, str, int]]] = {}
        for tier_name, label, price, sort_order in ladder_rows:
            grouped.setdefault(tier_name, []).append((sort_order, label, price))
        tiers = {
            name: LadderTier(
                tier_name=name,
                durations=tuple((label, price) for _, label, price in sorted(rows, key=lambda r: r[0])),
            )
            for name, rows in grouped.items()
        }
        return cls(
            items={(i.category, i.name): i for i in items},
            areas={a.area_name: a for a in areas},
            ladder_tiers=tiers,
        )

    @classmethod
    def defaults(cls) -> "PricingCatalog":
        """Catalog built from the bundled default reference tables."""
        return cls.build(
            (
                CatalogItem(category, name, display, price, volume)
                for category, name, display, price, volume in DEFAULT_ITEMS
            ),
            (AreaTier(name, p1, p2, p3) for name, p1, p2, p3 in DEFAULT_AREA_RATES),
            default_ladder_rows(),
        )


def load_catalog(db: Session) -> PricingCatalog:
    """Build a snapshot from the active reference rows in the store."""
    items = (
        db.query(models.ItemCatalogEntry)
        .filter(models.ItemCatalogEntry.active.is_(True))
        .all()
    )
    areas = db.query(models.AreaRate).filter(models.AreaRate.active.is_(True)).all()
    ladders = db.query(models.LadderPrice).all()
    return PricingCatalog.build(
        (
            CatalogItem(
                category=row.category,
                name=row.name,
                display_name=row.display_name,
                unit_price=int(row.unit_price or 0),
                unit_volume=float(row.unit_volume or 0.0),
            )
            for row in items
        ),
        (AreaTier(row.area_name, row.price1, row.price2, row.price3) for row in areas),
        ((row.tier_name, row.duration_label, row.price, row.sort_order) for row in ladders),
    )


def detect_area(sigungu: str, sido: str, catalog: PricingCatalog) -> Optional[AreaTier]:
    """Match a postcode lookup's district/province to a service area.

    Seoul districts match directly ("강남구"); Gyeonggi cities drop the
    "시" suffix and any sub-district ("고양시 덕양구" -> "고양"); anything in
    Incheon maps to "인천". Returns None for areas outside the service zone.
    """
    sigungu = (sigungu or "").strip()
    sido = (sido or "").strip()
    direct = catalog.area(sigungu)
    if direct:
        return direct
    if sido.startswith("경기"):
        city = sigungu.split("시")[0]
        match = catalog.area(city)
        if match:
            return match
    if sido.startswith("인천"):
        return catalog.area("인천")
    return None


# ─── Default reference tables ───────────────────────────────────────────────

DEFAULT_AREA_RATES: tuple[tuple[str, int, int, int], ...] = (
    ("광진구", 47000, 71000, 107000),
    ("강동구", 49000, 74000, 111000),
    ("송파구", 49000, 74000, 111000),
    ("강남구", 50000, 75000, 113000),
    ("성동구", 50000, 75000, 113000),
    ("동대문구", 49000, 74000, 111000),
    ("중랑구", 48000, 72000, 108000),
    ("서초구", 52000, 78000, 117000),
    ("동작구", 56000, 84000, 126000),
    ("관악구", 57000, 86000, 129000),
    ("용산구", 52000, 78000, 117000),
    ("중구", 51000, 77000, 116000),
    ("종로구", 52000, 78000, 117000),
    ("성북구", 50000, 75000, 113000),
    ("강북구", 52000, 78000, 117000),
    ("도봉구", 52000, 78000, 117000),
    ("노원구", 51000, 77000, 116000),
    ("금천구", 60000, 90000, 135000),
    ("구로구", 59000, 89000, 134000),
    ("양천구", 60000, 90000, 135000),
    ("영등포구", 59000, 89000, 134000),
    ("강서구", 61000, 92000, 138000),
    ("마포구", 59000, 89000, 134000),
    ("서대문구", 56000, 84000, 126000),
    ("은평구", 56000, 84000, 126000),
    ("김포", 69000, 104000, 156000),
    ("파주", 71000, 107000, 161000),
    ("동두천", 67000, 101000, 152000),
    ("포천", 67000, 101000, 152000),
    ("양주", 60000, 90000, 135000),
    ("의정부", 57000, 86000, 129000),
    ("고양", 62000, 93000, 140000),
    ("남양주", 50000, 75000, 113000),
    ("구리", 46000, 69000, 104000),
    ("하남", 51000, 77000, 116000),
    ("가평", 72000, 108000, 162000),
    ("양평", 65000, 98000, 147000),
    ("여주", 79000, 119000, 179000),
    ("이천", 72000, 108000, 162000),
    ("안성", 85000, 128000, 192000),
    ("평택", 83000, 125000, 188000),
    ("화성", 76000, 114000, 171000),
    ("오산", 72000, 108000, 162000),
    ("용인", 68000, 102000, 153000),
    ("성남", 56000, 84000, 126000),
    ("수원", 67000, 101000, 152000),
    ("광주", 56000, 84000, 126000),
    ("안산", 71000, 107000, 161000),
    ("군포", 65000, 98000, 147000),
    ("의왕", 64000, 96000, 144000),
    ("과천", 58000, 87000, 131000),
    ("안양", 61000, 92000, 138000),
    ("부천", 65000, 98000, 147000),
    ("광명", 61000, 92000, 138000),
    ("인천", 72000, 108000, 162000),
    ("시흥", 65000, 98000, 147000),
)

_LADDER_DURATIONS = (
    "1시간 미만(기본요금)",
    "1시간",
    "2시간",
    "3시간",
    "4시간",
    "5시간",
    "6시간",
    "7시간",
)

DEFAULT_LADDER_PRICES: dict[str, tuple[int, ...]] = {
    "10층 이상": (140000, 230000, 320000, 410000, 500000, 590000, 680000, 770000),
    "10층 미만": (130000, 210000, 290000, 370000, 450000, 530000, 610000, 690000),
}


def default_ladder_rows() -> list[tuple[str, str, int, int]]:
    return [
        (tier, _LADDER_DURATIONS[idx], price, idx)
        for tier, prices in DEFAULT_LADDER_PRICES.items()
        for idx, price in enumerate(prices)
    ]


# (category, name, display name, unit price KRW, unit volume m³)
DEFAULT_ITEMS: tuple[tuple[str, str, str, int, float], ...] = (
    ("가구", "소파", "소파", 30000, 1.2),
    ("가구", "책상", "책상", 20000, 0.6),
    ("가구", "의자", "의자", 8000, 0.2),
    ("소파", "1~2인용 소파", "1~2인용 소파", 20000, 0.8),
    ("소파", "3인용 이상 소파", "3인용 이상 / L자형 소파", 35000, 1.6),
    ("침대", "싱글 매트리스", "싱글/슈퍼싱글 매트리스", 30000, 0.8),
    ("침대", "퀸 매트리스", "더블/퀸/킹 매트리스", 45000, 1.2),
    ("침대", "침대 프레임", "침대 프레임 포함", 60000, 1.5),
    ("장롱", "장롱 1자", "장롱 (1자)", 25000, 0.7),
    ("장롱", "장롱 3자", "장롱 (3자)", 60000, 2.0),
    ("장식장", "장식장", "장식장", 40000, 1.0),
    ("거실장", "거실장", "거실장", 30000, 0.8),
    ("가전", "냉장고", "냉장고 (대형/양문형)", 50000, 1.5),
    ("가전", "소형 냉장고", "냉장고 (200L 이하)", 30000, 0.6),
    ("가전", "세탁기", "일반 세탁기", 30000, 0.7),
    ("가전", "드럼 세탁기", "드럼 세탁기 / 건조기", 40000, 0.8),
    ("가전", "TV", "TV", 15000, 0.3),
    ("식탁/의자", "식탁", "식탁", 25000, 0.9),
    ("서랍장", "서랍장", "서랍장", 20000, 0.6),
    ("수납장", "수납장", "수납장", 20000, 0.6),
    ("운동기구", "러닝머신", "러닝머신", 60000, 1.5),
)
