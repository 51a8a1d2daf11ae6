import os
import logging
from fastapi import APIRouter, Depends, HTTPException, status, Response
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr, Field

from storefront.database import get_db
from storefront.dependencies import get_current_user
from storefront.errors import Conflict
from storefront.models import User
from storefront.security import (
    verify_password,
    hash_password,
    create_token,
    ACCESS_TOKEN_EXPIRE_DAYS,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])

logger = logging.getLogger(__name__)

COOKIE_SECURE = os.getenv("COOKIE_SECURE", "true").lower() == "true"


# =====================================================
# SCHEMAS
# =====================================================

class RegisterPayload(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


def _serialize_user(user: User) -> dict:
    return {
        "id": str(user.id),
        "name": user.name,
        "email": user.email,
        "role": user.role,
    }


# =====================================================
# REGISTER
# =====================================================

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterPayload,
    db: Session = Depends(get_db),
):
    if db.query(User).filter(User.email == payload.email).first():
        raise Conflict("Email already registered")

    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        role="user",
        is_active=True,
    )

    db.add(user)
    db.commit()

    logger.info("User registered | user_id=%s", user.id)

    return {"message": "User registered successfully"}


# =====================================================
# LOGIN
# =====================================================

@router.post("/login")
def login(
    payload: LoginPayload,
    response: Response,
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.email == payload.email).first()

    if not user or not verify_password(payload.password, user.password_hash):
        logger.warning("Failed login | email=%s", payload.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User disabled",
        )

    token = create_token(user.id, user.role)

    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="none" if COOKIE_SECURE else "lax",
        path="/",
        max_age=60 * 60 * 24 * ACCESS_TOKEN_EXPIRE_DAYS,
    )

    return {"message": "Login successful", "token": token}


# =====================================================
# PROFILE
# =====================================================

@router.get("/profile")
def get_profile(user: User = Depends(get_current_user)):
    return _serialize_user(user)


# =====================================================
# LOGOUT
# =====================================================

@router.post("/logout")
def logout(response: Response):
    response.delete_cookie(key="access_token", path="/")
    return {"message": "Logged out"}
