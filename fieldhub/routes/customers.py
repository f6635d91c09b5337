import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth.security import require_action
from ..db import get_db
from ..errors import NotFound
from ..models.models import Customer
from ..schemas.customers import CustomerCreate, CustomerResponse
from ..services.pagination import PageParams, page_params, paginate
from ..services.policy import Action, Actor


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/customers", tags=["customers"])


def _get_customer(db: Session, customer_id: uuid.UUID) -> Customer:
    customer = db.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer not found")
    return customer


@router.get("")
def list_customers(
    search: Optional[str] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    _: Actor = Depends(require_action(Action.VIEW_CUSTOMERS)),
):
    query = db.query(Customer)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(Customer.company_name.ilike(like), Customer.contact_person.ilike(like), Customer.phone.ilike(like))
        )
    query = query.order_by(Customer.company_name.asc())
    return paginate(query, params, present=lambda c: CustomerResponse.model_validate(c).model_dump(mode="json"))


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
def create_customer(
    payload: CustomerCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.CREATE_CUSTOMER)),
):
    row = Customer(**payload.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("customer_created", customer_id=str(row.id), actor_id=actor.id)
    return row


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer(
    customer_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_action(Action.VIEW_CUSTOMERS)),
):
    return _get_customer(db, customer_id)


@router.put("/{customer_id}", response_model=CustomerResponse)
def update_customer(
    customer_id: uuid.UUID,
    payload: CustomerCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.CREATE_CUSTOMER)),
):
    row = _get_customer(db, customer_id)
    for key, value in payload.model_dump().items():
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    logger.info("customer_updated", customer_id=str(row.id), actor_id=actor.id)
    return row
