# backend/app/api/auth.py

from datetime import datetime, timedelta
from typing import Optional

from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from app.core.config import settings


SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

# Tokens are issued by the external login surface; this service only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

TOKEN_TYPE_ADMIN = "admin"
TOKEN_TYPE_DRIVER = "driver"
TOKEN_TYPE_BOOKING = "booking"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def create_admin_token(email: str) -> str:
    return create_access_token({"sub": email, "typ": TOKEN_TYPE_ADMIN})


def create_driver_token(driver_id: str, name: str) -> str:
    return create_access_token(
        {"sub": driver_id, "name": name, "typ": TOKEN_TYPE_DRIVER},
        timedelta(hours=settings.DRIVER_TOKEN_EXPIRE_HOURS),
    )


def create_booking_token(booking_id: str) -> str:
    """Token handed to the customer at submission for managing one booking."""
    return create_access_token(
        {"sub": booking_id, "typ": TOKEN_TYPE_BOOKING},
        timedelta(days=settings.BOOKING_TOKEN_EXPIRE_DAYS),
    )


def decode_token(token: str, expected_type: str) -> dict:
    """Decode ``token`` and check its type; raises ``JWTError`` on any mismatch."""
    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    if payload.get("typ") != expected_type or not payload.get("sub"):
        raise JWTError(f"expected a {expected_type} token")
    return payload
