"""
Inventory ledger.

Stock is never stored. Each product has one opening balance per month and one
movement row per day; current stock for the month is

    opening_qty + sum(in_qty) - sum(out_qty)

User edits of the form "the month's total in is now X" are turned into a
delta posted on today's row, so history is only ever appended to. Movement
rows are incremented in SQL (upsert with ``col = col + delta``), never
read-modify-written. Negative stock is allowed and reported, not blocked.
"""
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Tuple

import pytz
import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import InventoryDailyMovement, InventoryMonthOpening


logger = structlog.get_logger(__name__)

MANUAL_ADJUSTMENT_NOTE = "Manual adjustment"


@dataclass(frozen=True)
class LedgerTotals:
    opening_qty: int
    total_in: int
    total_out: int

    @property
    def current_stock(self) -> int:
        return self.opening_qty + self.total_in - self.total_out


@dataclass(frozen=True)
class Adjustment:
    delta_in: int
    delta_out: int
    totals: LedgerTotals

    @property
    def posted(self) -> bool:
        return bool(self.delta_in or self.delta_out)


def local_today() -> date:
    tz = pytz.timezone(settings.tz_default)
    return datetime.now(tz).date()


def compute_deltas(current_in: int, current_out: int, desired_in: int, desired_out: int) -> Tuple[int, int]:
    return desired_in - current_in, desired_out - current_out


def _insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Unsupported database dialect for ledger upserts: {dialect}")
    return insert


def ensure_month_opening(db: Session, product_id: uuid.UUID, year: int, month: int, opening_qty: int = 0) -> None:
    """Create the month's opening row if it does not exist yet."""
    insert = _insert(db)
    stmt = insert(InventoryMonthOpening.__table__).values(
        id=uuid.uuid4(), year=year, month=month, product_id=product_id, opening_qty=opening_qty
    ).on_conflict_do_nothing(index_elements=["year", "month", "product_id"])
    db.execute(stmt)


def set_month_opening(db: Session, product_id: uuid.UUID, year: int, month: int, opening_qty: int) -> None:
    insert = _insert(db)
    stmt = insert(InventoryMonthOpening.__table__).values(
        id=uuid.uuid4(), year=year, month=month, product_id=product_id, opening_qty=opening_qty
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["year", "month", "product_id"],
        set_={"opening_qty": stmt.excluded.opening_qty},
    )
    db.execute(stmt)


def post_movement(
    db: Session,
    product_id: uuid.UUID,
    year: int,
    month: int,
    day: int,
    in_qty: int,
    out_qty: int,
    note: str = MANUAL_ADJUSTMENT_NOTE,
) -> None:
    """Add in/out quantities to the day's row, creating it when absent."""
    table = InventoryDailyMovement.__table__
    insert = _insert(db)
    stmt = insert(table).values(
        id=uuid.uuid4(), year=year, month=month, day=day, product_id=product_id,
        in_qty=in_qty, out_qty=out_qty, note=note,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["year", "month", "day", "product_id"],
        set_={
            "in_qty": table.c.in_qty + stmt.excluded.in_qty,
            "out_qty": table.c.out_qty + stmt.excluded.out_qty,
            "note": stmt.excluded.note,
        },
    )
    db.execute(stmt)


def month_totals(db: Session, product_id: uuid.UUID, year: int, month: int) -> LedgerTotals:
    opening = db.execute(
        select(InventoryMonthOpening.opening_qty).where(
            InventoryMonthOpening.product_id == product_id,
            InventoryMonthOpening.year == year,
            InventoryMonthOpening.month == month,
        )
    ).scalar_one_or_none()
    total_in, total_out = db.execute(
        select(
            func.coalesce(func.sum(InventoryDailyMovement.in_qty), 0),
            func.coalesce(func.sum(InventoryDailyMovement.out_qty), 0),
        ).where(
            InventoryDailyMovement.product_id == product_id,
            InventoryDailyMovement.year == year,
            InventoryDailyMovement.month == month,
        )
    ).one()
    return LedgerTotals(opening_qty=int(opening or 0), total_in=int(total_in), total_out=int(total_out))


def current_stock(db: Session, product_id: uuid.UUID, year: int, month: int) -> int:
    return month_totals(db, product_id, year, month).current_stock


def apply_adjustment(
    db: Session,
    product_id: uuid.UUID,
    year: int,
    month: int,
    day: int,
    desired_in: int,
    desired_out: int,
) -> Adjustment:
    """Bring the month's cumulative in/out to the desired totals via today's row."""
    before = month_totals(db, product_id, year, month)
    delta_in, delta_out = compute_deltas(before.total_in, before.total_out, desired_in, desired_out)
    if delta_in or delta_out:
        post_movement(db, product_id, year, month, day, delta_in, delta_out)
        logger.info(
            "inventory_adjustment_posted",
            product_id=str(product_id), year=year, month=month, day=day,
            delta_in=delta_in, delta_out=delta_out,
        )
    after = LedgerTotals(
        opening_qty=before.opening_qty,
        total_in=before.total_in + delta_in,
        total_out=before.total_out + delta_out,
    )
    if after.current_stock < 0:
        logger.warning("inventory_negative_stock", product_id=str(product_id), stock=after.current_stock)
    return Adjustment(delta_in=delta_in, delta_out=delta_out, totals=after)


def list_movements(db: Session, product_id: uuid.UUID, year: int, month: int) -> List[InventoryDailyMovement]:
    return (
        db.query(InventoryDailyMovement)
        .filter(
            InventoryDailyMovement.product_id == product_id,
            InventoryDailyMovement.year == year,
            InventoryDailyMovement.month == month,
        )
        .order_by(InventoryDailyMovement.day.asc())
        .all()
    )
