import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import require_admin
from storefront.errors import NotFound
from storefront.models import Category, User

router = APIRouter(prefix="/categories", tags=["categories"])


class CategoryPayload(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


def _serialize_category(c: Category) -> dict:
    return {
        "id":          str(c.id),
        "name":        c.name,
        "description": c.description,
        "user_id":     str(c.user_id) if c.user_id else None,
        "created_at":  c.created_at,
    }


def _get_category_or_404(db: Session, category_id) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise NotFound("Category not found")
    return category


@router.get("")
def list_categories(db: Session = Depends(get_db)):
    return [_serialize_category(c) for c in db.query(Category).order_by(Category.name).all()]


@router.get("/{category_id}")
def get_category(category_id: uuid.UUID, db: Session = Depends(get_db)):
    return _serialize_category(_get_category_or_404(db, category_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(
    payload: CategoryPayload,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    category = Category(
        name=payload.name,
        description=payload.description,
        user_id=admin.id,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return _serialize_category(category)


@router.put("/{category_id}", dependencies=[Depends(require_admin)])
def update_category(
    category_id: uuid.UUID,
    payload: CategoryPayload,
    db: Session = Depends(get_db),
):
    category = _get_category_or_404(db, category_id)
    category.name = payload.name
    category.description = payload.description
    db.commit()
    db.refresh(category)
    return _serialize_category(category)


@router.delete("/{category_id}", dependencies=[Depends(require_admin)])
def delete_category(category_id: uuid.UUID, db: Session = Depends(get_db)):
    category = _get_category_or_404(db, category_id)
    db.delete(category)
    db.commit()
    return {"message": "Category removed"}
