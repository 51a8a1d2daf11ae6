import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session, joinedload

from storefront.database import get_db
from storefront.dependencies import get_current_user
from storefront.errors import Conflict, Forbidden, NotFound
from storefront.models import Product, User, Wishlist
from storefront.services.orders import list_user_orders, serialize_order

router = APIRouter(prefix="/users", tags=["users"])


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    avatar: Optional[str] = None


def _require_self_or_admin(user_id: uuid.UUID, current_user: User) -> None:
    if current_user.id != user_id and not current_user.is_admin:
        raise Forbidden("Not authorized to access this account")


def _get_user_or_404(db: Session, user_id: uuid.UUID) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return user


def _serialize_profile(user: User) -> dict:
    return {
        "id": str(user.id),
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "avatar": user.avatar,
        "created_at": user.created_at,
    }


# =========================
# ORDERS
# =========================

@router.get("/{user_id}/orders")
def get_user_orders(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_self_or_admin(user_id, current_user)
    return [serialize_order(o) for o in list_user_orders(db, user_id)]


# =========================
# WISHLIST
# =========================

@router.get("/{user_id}/wishlist")
def get_user_wishlist(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_self_or_admin(user_id, current_user)

    entries = (
        db.query(Wishlist)
        .options(joinedload(Wishlist.product))
        .filter(Wishlist.user_id == user_id)
        .order_by(Wishlist.created_at.desc())
        .all()
    )

    return [
        {
            "product_id": str(w.product_id),
            "name":       w.product.name,
            "price":      w.product.price,
            "image":      w.product.image,
            "added_at":   w.created_at,
        }
        for w in entries
        if w.product
    ]


@router.post("/{user_id}/wishlist/{product_id}", status_code=status.HTTP_201_CREATED)
def add_to_wishlist(
    user_id: uuid.UUID,
    product_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_self_or_admin(user_id, current_user)
    _get_user_or_404(db, user_id)

    if not db.query(Product.id).filter(Product.id == product_id).first():
        raise NotFound("Product not found")

    existing = (
        db.query(Wishlist.id)
        .filter(Wishlist.user_id == user_id, Wishlist.product_id == product_id)
        .first()
    )
    if existing:
        raise Conflict("Product already in wishlist")

    db.add(Wishlist(user_id=user_id, product_id=product_id))
    db.commit()

    return {"message": "Added to wishlist", "product_id": str(product_id)}


@router.delete("/{user_id}/wishlist/{product_id}")
def remove_from_wishlist(
    user_id: uuid.UUID,
    product_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_self_or_admin(user_id, current_user)

    entry = (
        db.query(Wishlist)
        .filter(Wishlist.user_id == user_id, Wishlist.product_id == product_id)
        .first()
    )
    if not entry:
        raise NotFound("Product not in wishlist")

    db.delete(entry)
    db.commit()

    return {"message": "Removed from wishlist"}


# =========================
# PROFILE
# =========================

@router.get("/{user_id}/profile")
def get_user_profile(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_self_or_admin(user_id, current_user)
    return _serialize_profile(_get_user_or_404(db, user_id))


@router.put("/{user_id}/profile")
def update_user_profile(
    user_id: uuid.UUID,
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_self_or_admin(user_id, current_user)
    user = _get_user_or_404(db, user_id)

    updates = payload.model_dump(exclude_unset=True, exclude_none=True)

    if "email" in updates and updates["email"] != user.email:
        taken = db.query(User.id).filter(User.email == updates["email"]).first()
        if taken:
            raise Conflict("Email already registered")

    for field, value in updates.items():
        setattr(user, field, value)

    db.commit()
    db.refresh(user)
    return {"message": "Profile updated successfully", "user": _serialize_profile(user)}
