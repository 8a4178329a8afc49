import logging
from datetime import datetime

from sqlalchemy import inspect, text, select, func
from sqlalchemy.engine import Engine

from app.models import AreaRate, ItemCatalogEntry, LadderPrice
from app.services.pricing_catalog import (
    DEFAULT_AREA_RATES,
    DEFAULT_ITEMS,
    default_ladder_rows,
)

logger = logging.getLogger(__name__)


def add_column_if_missing(engine: Engine, table: str, column: str, ddl: str) -> None:
    """Add a column to *table* if it does not exist."""

    inspector = inspect(engine)
    if table not in inspector.get_table_names():
        return
    column_names = [col["name"] for col in inspector.get_columns(table)]
    if column not in column_names:
        with engine.connect() as conn:
            normalized = ddl
            if engine.dialect.name == "postgresql":
                normalized = normalized.replace(" FLOAT", " DOUBLE PRECISION")
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {normalized}"))
            conn.commit()


def ensure_booking_geo_columns(engine: Engine) -> None:
    """Add stop coordinates to ``bookings`` tables created before route optimization."""

    add_column_if_missing(engine, "bookings", "latitude", "latitude FLOAT")
    add_column_if_missing(engine, "bookings", "longitude", "longitude FLOAT")


def ensure_booking_lifecycle_columns(engine: Engine) -> None:
    """Add ``quote_confirmed_at`` to ``bookings`` tables created before quote expiry."""

    add_column_if_missing(engine, "bookings", "quote_confirmed_at", "quote_confirmed_at TIMESTAMP")


def _table_is_empty(conn, table) -> bool:
    return (conn.execute(select(func.count()).select_from(table)).scalar() or 0) == 0


def seed_reference_data(engine: Engine) -> None:
    """Insert the default pricing tables when they are empty.

    Existing rows are never touched; reference data maintained by operators
    wins over the bundled defaults.
    """

    now = datetime.utcnow()
    stamps = {"created_at": now, "updated_at": now}
    items_table = ItemCatalogEntry.__table__
    areas_table = AreaRate.__table__
    ladder_table = LadderPrice.__table__

    with engine.begin() as conn:
        if _table_is_empty(conn, areas_table):
            conn.execute(
                areas_table.insert(),
                [
                    {"area_name": name, "price1": p1, "price2": p2, "price3": p3, "active": True, **stamps}
                    for name, p1, p2, p3 in DEFAULT_AREA_RATES
                ],
            )
            logger.info("Seeded area rates", extra={"rows": len(DEFAULT_AREA_RATES)})

        if _table_is_empty(conn, ladder_table):
            rows = default_ladder_rows()
            conn.execute(
                ladder_table.insert(),
                [
                    {
                        "tier_name": tier,
                        "duration_label": label,
                        "price": price,
                        "sort_order": sort_order,
                        **stamps,
                    }
                    for tier, label, price, sort_order in rows
                ],
            )
            logger.info("Seeded ladder prices", extra={"rows": len(rows)})

        if _table_is_empty(conn, items_table):
            conn.execute(
                items_table.insert(),
                [
                    {
                        "category": category,
                        "name": name,
                        "display_name": display,
                        "unit_price": price,
                        "unit_volume": volume,
                        "active": True,
                        **stamps,
                    }
                    for category, name, display, price, volume in DEFAULT_ITEMS
                ],
            )
            logger.info("Seeded item catalog", extra={"rows": len(DEFAULT_ITEMS)})
