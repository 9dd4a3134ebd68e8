"""SQLAlchemy repository for FlexVolt stock levels.

One ``stock`` table maps each SKU to its available quantity. Reservations
lock the affected rows (``SELECT ... FOR UPDATE`` on PostgreSQL) and are all
or nothing. The connection URL comes from ``INVENTORY_DATABASE_URL``, or is
assembled from the ``DB_*`` variables.
"""

import os
from collections import Counter
from contextlib import contextmanager
from typing import Iterable, Optional

from sqlalchemy import Integer, String, create_engine, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column

DB_HOST = os.getenv("DB_HOST", "inventory-db")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "inventory")
DB_USER = os.getenv("DB_USER", "inventory_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "inventory-pass")

DATABASE_URL = os.getenv(
    "INVENTORY_DATABASE_URL",
    f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

# Opening stock for a fresh database
DEFAULT_STOCK = {"DCB606": 120, "DCB609": 80, "DCB615": 40}

engine = create_engine(DATABASE_URL, pool_pre_ping=True)


class Base(DeclarativeBase):
    pass


class Stock(Base):
    """Available units of one SKU."""

    __tablename__ = "stock"
    sku = mapped_column(String(32), primary_key=True)
    quantity = mapped_column(Integer, nullable=False, default=0)


def init_db(bind: Engine = engine, seed: Optional[dict] = None) -> None:
    """Create the schema and insert opening stock for SKUs not present yet."""
    Base.metadata.create_all(bind)
    with Session(bind) as s:
        for sku, qty in (DEFAULT_STOCK if seed is None else seed).items():
            if s.get(Stock, sku) is None:
                s.add(Stock(sku=sku, quantity=qty))
        s.commit()


def ping(bind: Engine = engine) -> None:
    with bind.connect() as conn:
        conn.execute(text("select 1"))


def _totals(items: Iterable[tuple[str, int]]) -> Counter:
    # the same SKU may appear on several lines
    totals = Counter()
    for sku, qty in items:
        totals[sku] += qty
    return totals


class InventoryRepo:
    """Stock reads and writes over one engine."""

    def __init__(self, bind: Engine = engine):
        self.bind = bind

    @contextmanager
    def session(self):
        with Session(self.bind) as s:
            yield s

    def get(self, sku: str) -> Optional[int]:
        """Available quantity, or None for an unknown SKU."""
        with self.session() as s:
            obj = s.get(Stock, sku)
            return obj.quantity if obj else None

    def upsert(self, sku: str, quantity: int) -> None:
        with self.session() as s:
            obj = s.get(Stock, sku)
            if obj is None:
                s.add(Stock(sku=sku, quantity=quantity))
            else:
                obj.quantity = quantity
            s.commit()

    def reserve(self, items: list[tuple[str, int]]) -> bool:
        """Decrement every SKU, or nothing when any of them is short.

        Returns:
            bool: False on insufficient stock; no row is changed then.
        """
        totals = _totals(items)
        with self.session() as s:
            rows = s.scalars(select(Stock).where(Stock.sku.in_(list(totals))).with_for_update()).all()
            current = {r.sku: r for r in rows}
            for sku, qty in totals.items():
                if sku not in current or current[sku].quantity < qty:
                    s.rollback()
                    return False
            for sku, qty in totals.items():
                current[sku].quantity -= qty
            s.commit()
            return True

    def release(self, items: list[tuple[str, int]]) -> None:
        """Return units to stock; unknown SKUs are created."""
        totals = _totals(items)
        with self.session() as s:
            rows = s.scalars(select(Stock).where(Stock.sku.in_(list(totals))).with_for_update()).all()
            current = {r.sku: r for r in rows}
            for sku, qty in totals.items():
                if sku in current:
                    current[sku].quantity += qty
                else:
                    s.add(Stock(sku=sku, quantity=qty))
            s.commit()

    def all(self) -> dict[str, int]:
        with self.session() as s:
            return {r.sku: r.quantity for r in s.scalars(select(Stock).order_by(Stock.sku))}
