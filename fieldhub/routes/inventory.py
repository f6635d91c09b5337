import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import require_action
from ..db import get_db
from ..errors import Conflict, NotFound
from ..models.models import InventoryProduct, MaterialService
from ..schemas.inventory import (
    AdjustmentResponse,
    MaterialCreate,
    MaterialResponse,
    MovementList,
    MovementResponse,
    ProductAdjust,
    ProductCreate,
    ProductStock,
)
from ..services import inventory_ledger as ledger
from ..services.pagination import PageParams, page_params, paginate
from ..services.policy import Action, Actor


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


def _period(year: Optional[int], month: Optional[int]):
    today = ledger.local_today()
    return year or today.year, month or today.month


def _stock_view(db: Session, product: InventoryProduct, year: int, month: int) -> ProductStock:
    totals = ledger.month_totals(db, product.product_id, year, month)
    return ProductStock(
        product_id=product.product_id,
        product_code=product.product_code,
        model_name=product.model_name,
        unit=product.unit,
        year=year,
        month=month,
        opening_qty=totals.opening_qty,
        total_in=totals.total_in,
        total_out=totals.total_out,
        current_stock=totals.current_stock,
    )


def _get_product(db: Session, product_id: uuid.UUID) -> InventoryProduct:
    product = db.get(InventoryProduct, product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


# ---------- CATALOGUE ----------
@router.get("")
def list_catalogue(
    type_: Optional[str] = Query(None, alias="type"),
    search: Optional[str] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _: Actor = Depends(require_action(Action.VIEW_INVENTORY)),
):
    query = db.query(MaterialService)
    if type_:
        query = query.filter(MaterialService.type == type_.strip().lower())
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(MaterialService.item_code.ilike(like), MaterialService.name.ilike(like)))
    query = query.order_by(MaterialService.item_code.asc())
    return paginate(query, params, present=lambda m: MaterialResponse.model_validate(m).model_dump(mode="json"))


@router.post("/materials", response_model=MaterialResponse, status_code=status.HTTP_201_CREATED)
def create_material(
    payload: MaterialCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.MANAGE_INVENTORY)),
):
    if db.query(MaterialService.id).filter(MaterialService.item_code == payload.item_code).first():
        raise Conflict("Item code already exists")
    row = MaterialService(**payload.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("material_created", material_id=str(row.id), item_code=row.item_code, actor_id=actor.id)
    return row


# ---------- PRODUCTS / LEDGER ----------
@router.get("/products")
def list_products(
    year: Optional[int] = None,
    month: Optional[int] = Query(None, ge=1, le=12),
    search: Optional[str] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _: Actor = Depends(require_action(Action.VIEW_INVENTORY)),
):
    year, month = _period(year, month)
    query = db.query(InventoryProduct)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(InventoryProduct.product_code.ilike(like), InventoryProduct.model_name.ilike(like)))
    query = query.order_by(InventoryProduct.product_code.asc())
    return paginate(query, params, present=lambda p: _stock_view(db, p, year, month).model_dump(mode="json"))


@router.post("/products", response_model=ProductStock, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.MANAGE_INVENTORY)),
):
    if db.query(InventoryProduct.product_id).filter(InventoryProduct.product_code == payload.product_code).first():
        raise Conflict("Product code already exists")
    today = ledger.local_today()
    product = InventoryProduct(product_code=payload.product_code, model_name=payload.model_name, unit=payload.unit)
    db.add(product)
    db.flush()
    ledger.set_month_opening(db, product.product_id, today.year, today.month, payload.opening_qty)
    if payload.in_qty or payload.out_qty:
        ledger.post_movement(
            db, product.product_id, today.year, today.month, today.day,
            payload.in_qty, payload.out_qty, note="Initial stock",
        )
    db.commit()
    logger.info("inventory_product_created", product_id=str(product.product_id), actor_id=actor.id)
    return _stock_view(db, product, today.year, today.month)


@router.put("/products/{product_id}", response_model=AdjustmentResponse)
def adjust_product(
    product_id: uuid.UUID,
    payload: ProductAdjust,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.MANAGE_INVENTORY)),
):
    product = _get_product(db, product_id)
    if payload.model_name is not None and payload.model_name.strip():
        product.model_name = payload.model_name.strip()
    if "unit" in payload.model_fields_set:
        product.unit = payload.unit
    today = ledger.local_today()
    if payload.opening_qty is not None:
        ledger.set_month_opening(db, product.product_id, today.year, today.month, payload.opening_qty)
    else:
        ledger.ensure_month_opening(db, product.product_id, today.year, today.month)
    adjustment = ledger.apply_adjustment(
        db, product.product_id, today.year, today.month, today.day, payload.total_in, payload.total_out
    )
    db.commit()
    logger.info("inventory_product_updated", product_id=str(product.product_id), actor_id=actor.id)
    stock = _stock_view(db, product, today.year, today.month)
    return AdjustmentResponse(**stock.model_dump(), delta_in=adjustment.delta_in, delta_out=adjustment.delta_out)


@router.get("/products/{product_id}/movements", response_model=MovementList)
def list_product_movements(
    product_id: uuid.UUID,
    year: Optional[int] = None,
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    _: Actor = Depends(require_action(Action.VIEW_INVENTORY)),
):
    product = _get_product(db, product_id)
    year, month = _period(year, month)
    rows = ledger.list_movements(db, product.product_id, year, month)
    return MovementList(data=[MovementResponse.model_validate(r) for r in rows])
