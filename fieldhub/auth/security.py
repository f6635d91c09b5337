import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..errors import Unauthenticated
from ..logging import bind_actor
from ..models.enums import UserRole
from ..models.models import Department, User
from ..services.policy import Action, Actor, require_grant


logger = structlog.get_logger(__name__)

http_bearer = HTTPBearer(auto_error=False)


def create_access_token(
    subject: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
    role: Optional[str] = None,
    department_id: Optional[str] = None,
    ttl_seconds: Optional[int] = None,
) -> str:
    """Issue a token locally. Production tokens come from the identity provider."""
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl_seconds or settings.jwt_ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    extra = {"email": email, "name": name, "role": role, "department_id": department_id}
    payload.update({k: v for k, v in extra.items() if v is not None})
    if settings.jwt_issuer:
        payload["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    options = {"require": ["sub", "exp"]}
    kwargs = {}
    if settings.jwt_issuer:
        kwargs["issuer"] = settings.jwt_issuer
    if settings.jwt_audience:
        kwargs["audience"] = settings.jwt_audience
    else:
        options["verify_aud"] = False
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm], options=options, **kwargs)
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid token")


def _claimed_role(claims: dict) -> UserRole:
    raw = claims.get("role")
    try:
        return UserRole(raw) if raw else UserRole.NOT_ASSIGN
    except ValueError:
        return UserRole.NOT_ASSIGN


def _claimed_department(db: Session, claims: dict) -> Optional[uuid.UUID]:
    raw = claims.get("department_id")
    if not raw:
        return None
    try:
        dept_id = uuid.UUID(str(raw))
    except ValueError:
        return None
    return dept_id if db.get(Department, dept_id) is not None else None


def _provision_user(db: Session, claims: dict) -> User:
    email = (claims.get("email") or "").strip().lower()
    if not email:
        raise Unauthenticated("Token carries no email for a new account")
    if db.query(User.id).filter(User.email == email).first():
        raise Unauthenticated("Email is already linked to another account")
    user = User(
        id=str(claims["sub"]),
        email=email,
        full_name=claims.get("name"),
        role=_claimed_role(claims),
        department_id=_claimed_department(db, claims),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent first request for the same subject
        db.rollback()
        existing = db.get(User, user.id)
        if existing is None:
            raise Unauthenticated("Email is already linked to another account")
        return existing
    logger.info("user_provisioned", user_id=user.id, role=user.role.value)
    return user


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
) -> User:
    if creds is None:
        raise Unauthenticated("Not authenticated")
    claims = decode_token(creds.credentials)
    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise Unauthenticated("Invalid subject")
    user = db.get(User, subject)
    if user is None:
        user = _provision_user(db, claims)
    return user


async def get_current_actor(user: User = Depends(get_current_user)) -> Actor:
    # Must stay async: only bindings made on the event loop reach the endpoint
    actor = Actor(id=user.id, role=user.role, department_id=user.department_id)
    bind_actor(actor)
    return actor


def require_action(action: Action, message: Optional[str] = None):
    """Dependency: the caller's role must be granted ``action``."""
    def _dep(actor: Actor = Depends(get_current_actor)) -> Actor:
        return require_grant(actor, action, message)

    return _dep
