import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ..auth.security import get_current_actor, require_action
from ..db import get_db
from ..errors import Conflict, Forbidden, NotFound, ValidationError
from ..models.enums import UserRole
from ..models.models import Department, User
from ..schemas.users import DepartmentCreate, DepartmentResponse, UserCreate, UserResponse, UserUpdate
from ..services.pagination import PageParams, page_params, pager, paginate
from ..services.policy import Action, Actor, has_grant, same_department


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])
departments_router = APIRouter(prefix="/api/departments", tags=["departments"])

# Roles that only make sense inside a department
_DEPARTMENT_ROLES = (UserRole.MANAGER, UserRole.TECHNICIAN)


def _present(user: User) -> dict:
    return UserResponse.model_validate(user).model_dump(mode="json")


def _get_user(db: Session, user_id: str) -> User:
    user = db.query(User).options(selectinload(User.department)).filter(User.id == user_id).one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user


def _check_department(db: Session, role: UserRole, department_id: Optional[uuid.UUID]) -> None:
    if department_id is not None and db.get(Department, department_id) is None:
        raise NotFound("Department not found")
    if role in _DEPARTMENT_ROLES and department_id is None:
        raise ValidationError(f"Department is required for {role.value} role")


def _check_email_free(db: Session, email: str, user_id: Optional[str] = None) -> None:
    query = db.query(User.id).filter(User.email == email)
    if user_id is not None:
        query = query.filter(User.id != user_id)
    if query.first():
        raise Conflict("Email is already in use")


@router.get("/me", response_model=UserResponse)
def me(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return _get_user(db, actor.id)


@router.get("")
def list_users(
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    department_id: Optional[uuid.UUID] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.VIEW_USERS)),
):
    query = db.query(User).options(selectinload(User.department))
    if actor.role is UserRole.MANAGER:
        if actor.department_id is None:
            raise Forbidden("Manager must be assigned to a department to view users")
        query = query.filter(User.department_id == actor.department_id)
    elif department_id is not None:
        query = query.filter(User.department_id == department_id)
    if role is not None:
        query = query.filter(User.role == role)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(User.full_name.ilike(like), User.email.ilike(like), User.phone_number.ilike(like)))
    query = query.order_by(User.created_at.desc())
    return paginate(query, params, present=_present)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.MANAGE_USERS, "Forbidden: Only Admin can manage users")),
):
    _check_department(db, payload.role, payload.department_id)
    if db.get(User, payload.id) is not None:
        raise Conflict("User already exists")
    _check_email_free(db, payload.email)
    user = User(**payload.model_dump())
    db.add(user)
    db.commit()
    logger.info("user_created", user_id=user.id, role=user.role.value, actor_id=actor.id)
    return _get_user(db, user.id)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    user = _get_user(db, user_id)
    if user.id == actor.id or actor.role is UserRole.ADMIN:
        return user
    if has_grant(actor, Action.VIEW_USERS) and same_department(actor.department_id, user.department_id):
        return user
    raise Forbidden("Forbidden: You can only view users in your department")


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.MANAGE_USERS, "Forbidden: Only Admin can manage users")),
):
    user = _get_user(db, user_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("role") is None:
        data.pop("role", None)
    if data.get("email") is None:
        data.pop("email", None)
    role = data.get("role", user.role)
    department_id = data["department_id"] if "department_id" in data else user.department_id
    _check_department(db, role, department_id)
    if "email" in data:
        _check_email_free(db, data["email"], user_id=user.id)
    for key, value in data.items():
        setattr(user, key, value)
    db.commit()
    logger.info("user_updated", user_id=user.id, actor_id=actor.id, fields=sorted(data))
    return _get_user(db, user.id)


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.MANAGE_USERS, "Forbidden: Only Admin can manage users")),
):
    if user_id == actor.id:
        raise ValidationError("You cannot delete your own account")
    user = _get_user(db, user_id)
    db.delete(user)
    db.commit()
    logger.info("user_deleted", user_id=user_id, actor_id=actor.id)
    return {"message": "User deleted successfully"}


@departments_router.get("")
def list_departments(
    params: PageParams = Depends(pager(default_limit=20)),
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    query = db.query(Department).order_by(Department.name.asc())
    return paginate(query, params, present=lambda d: DepartmentResponse.model_validate(d).model_dump(mode="json"))


@departments_router.post("", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
def create_department(
    payload: DepartmentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.MANAGE_DEPARTMENTS, "Forbidden: Only Admin can manage departments")),
):
    if db.query(Department.id).filter(Department.name == payload.name).first():
        raise Conflict("Department already exists")
    row = Department(name=payload.name)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("department_created", department_id=str(row.id), actor_id=actor.id)
    return row
