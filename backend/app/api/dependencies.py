from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from jose import JWTError
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.admin_user import AdminUser
from ..services.booking_lifecycle import Actor, has_permission
from ..services.pricing_catalog import PricingCatalog, load_catalog
from .auth import (
    TOKEN_TYPE_ADMIN,
    TOKEN_TYPE_BOOKING,
    TOKEN_TYPE_DRIVER,
    decode_token,
    oauth2_scheme,
)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_driver(token: Optional[str] = Depends(oauth2_scheme)) -> Actor:
    if not token:
        raise _credentials_exception()
    try:
        payload = decode_token(token, TOKEN_TYPE_DRIVER)
    except JWTError:
        raise _credentials_exception()
    return Actor.driver(payload["sub"], payload.get("name"))


def get_current_admin(
    token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> Actor:
    if not token:
        raise _credentials_exception()
    try:
        payload = decode_token(token, TOKEN_TYPE_ADMIN)
    except JWTError:
        raise _credentials_exception()
    email = str(payload["sub"]).strip().lower()
    admin = db.query(AdminUser).filter(func.lower(AdminUser.email) == email).first()
    if admin is None:
        raise _credentials_exception()
    return Actor.staff(admin.email, admin.role)


def require_permission(permission: str):
    """Dependency factory: the admin actor, if their role grants ``permission``."""

    def _checker(actor: Actor = Depends(get_current_admin)) -> Actor:
        if not has_permission(actor.role, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "message": f"Role {actor.role} lacks permission {permission}",
                    "field_errors": {"permission": permission},
                },
            )
        return actor

    return _checker


def get_booking_customer(
    booking_id: str, x_booking_token: Optional[str] = Header(None)
) -> Actor:
    """Customer actor from the ``X-Booking-Token`` header, bound to ``booking_id``."""
    if not x_booking_token:
        raise _credentials_exception()
    try:
        payload = decode_token(x_booking_token, TOKEN_TYPE_BOOKING)
    except JWTError:
        raise _credentials_exception()
    if payload["sub"] != booking_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token is for another booking")
    return Actor.customer(booking_id)


def get_pricing_catalog(db: Session = Depends(get_db)) -> PricingCatalog:
    """Snapshot of the reference tables for one request."""
    return load_catalog(db)
