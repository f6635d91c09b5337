import uuid

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.security import require_action
from ..db import get_db
from ..errors import NotFound
from ..models.models import Contact, Customer
from ..schemas.customers import ContactCreate, ContactResponse, ContactUpdate
from ..services.policy import Action, Actor


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/contacts", tags=["contacts"])


def _clear_other_primaries(db: Session, customer_id: uuid.UUID, keep_id=None) -> None:
    """At most one primary contact per customer."""
    query = db.query(Contact).filter(Contact.customer_id == customer_id, Contact.is_primary.is_(True))
    if keep_id is not None:
        query = query.filter(Contact.id != keep_id)
    query.update({Contact.is_primary: False}, synchronize_session=False)


def _get_contact(db: Session, contact_id: uuid.UUID) -> Contact:
    row = db.get(Contact, contact_id)
    if row is None:
        raise NotFound("Contact not found")
    return row


@router.get("")
def list_contacts(
    customer_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_action(Action.VIEW_CONTACTS)),
):
    rows = (
        db.query(Contact)
        .filter(Contact.customer_id == customer_id)
        .order_by(Contact.is_primary.desc(), Contact.name.asc())
        .all()
    )
    return {"data": [ContactResponse.model_validate(r).model_dump(mode="json") for r in rows]}


@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
def create_contact(
    payload: ContactCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.CREATE_CONTACT)),
):
    if db.get(Customer, payload.customer_id) is None:
        raise NotFound("Customer not found")
    if payload.is_primary:
        _clear_other_primaries(db, payload.customer_id)
    row = Contact(**payload.model_dump())
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("contact_created", contact_id=str(row.id), customer_id=str(row.customer_id), actor_id=actor.id)
    return row


@router.put("/{contact_id}", response_model=ContactResponse)
def update_contact(
    contact_id: uuid.UUID,
    payload: ContactUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.CREATE_CONTACT)),
):
    row = _get_contact(db, contact_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("is_primary"):
        _clear_other_primaries(db, row.customer_id, keep_id=row.id)
    for key, value in data.items():
        if key == "name":
            value = (value or "").strip() or None
        if value is None and key in ("name", "is_primary"):
            continue
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    logger.info("contact_updated", contact_id=str(row.id), actor_id=actor.id)
    return row


@router.delete("/{contact_id}")
def delete_contact(
    contact_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.DELETE_CONTACT)),
):
    row = _get_contact(db, contact_id)
    db.delete(row)
    db.commit()
    logger.info("contact_deleted", contact_id=str(contact_id), actor_id=actor.id)
    return {"message": "Contact deleted successfully"}
