import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import get_current_user, require_admin
from storefront.models import User
from storefront.services import reviews as review_service
from storefront.services.reviews import serialize_review

router = APIRouter(prefix="/reviews", tags=["reviews"])


# =====================================================
# Pydantic Schemas
# =====================================================

class ReviewCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: uuid.UUID = Field(alias="productId")
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class ReviewUpdate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class ReviewReply(BaseModel):
    reply: str = Field(..., min_length=1)


# =====================================================
# PUBLIC: APPROVED REVIEWS FOR A PRODUCT
# =====================================================

@router.get("/product/{product_id}")
def get_product_reviews(
    product_id: uuid.UUID,
    db: Session = Depends(get_db),
):
    return review_service.list_product_reviews(db, product_id)


# =====================================================
# USER: CREATE REVIEW
# =====================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def create_review(
    payload: ReviewCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Only buyers with a completed order may review; one review per product."""
    review = review_service.create_review(
        db,
        user_id=user.id,
        product_id=payload.product_id,
        rating=payload.rating,
        comment=payload.comment,
    )
    return serialize_review(review)


# =====================================================
# ADMIN: MODERATION
# ⚠️  /pending must be registered BEFORE /{review_id}
# =====================================================

@router.get("/pending", dependencies=[Depends(require_admin)])
def get_pending_reviews(db: Session = Depends(get_db)):
    return review_service.list_pending_reviews(db)


@router.put("/{review_id}/approve")
def approve_review(
    review_id: uuid.UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    return serialize_review(review_service.approve_review(db, review_id, admin_id=admin.id))


@router.post("/{review_id}/reply")
def reply_to_review(
    review_id: uuid.UUID,
    payload: ReviewReply,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    review = review_service.reply_to_review(db, review_id, admin_id=admin.id, reply=payload.reply)
    return serialize_review(review)


# =====================================================
# OWNER OR ADMIN: UPDATE / DELETE
# =====================================================

@router.put("/{review_id}")
def update_review(
    review_id: uuid.UUID,
    payload: ReviewUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    review = review_service.update_review(
        db,
        review_id,
        actor_id=user.id,
        is_admin=user.is_admin,
        rating=payload.rating,
        comment=payload.comment,
    )
    return serialize_review(review)


@router.delete("/{review_id}")
def delete_review(
    review_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    review_service.delete_review(db, review_id, actor_id=user.id, is_admin=user.is_admin)
    return {"message": "Review removed"}
