from sqlalchemy import Boolean, Column, Float, Integer, String, UniqueConstraint

from .base import BaseModel


class ItemCatalogEntry(BaseModel):
    """Authoritative unit price and volume for a pickup item."""

    __tablename__ = "item_catalog"

    id = Column(Integer, primary_key=True, index=True)
    category = Column(String, nullable=False)
    name = Column(String, nullable=False)
    display_name = Column(String, nullable=False)
    unit_price = Column(Integer, nullable=False, default=0)
    unit_volume = Column(Float, nullable=False, default=0.0)  # m³
    active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("category", "name", name="uq_item_catalog_category_name"),
    )


class AreaRate(BaseModel):
    """Base labor price per crew size for a service area."""

    __tablename__ = "area_rates"

    id = Column(Integer, primary_key=True, index=True)
    area_name = Column(String, nullable=False, unique=True, index=True)
    price1 = Column(Integer, nullable=False)
    price2 = Column(Integer, nullable=False)
    price3 = Column(Integer, nullable=False)
    active = Column(Boolean, nullable=False, default=True)


class LadderPrice(BaseModel):
    """One billed-duration row of a ladder-truck tier."""

    __tablename__ = "ladder_prices"

    id = Column(Integer, primary_key=True, index=True)
    tier_name = Column(String, nullable=False, index=True)  # "10층 미만" | "10층 이상"
    duration_label = Column(String, nullable=False)
    price = Column(Integer, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
