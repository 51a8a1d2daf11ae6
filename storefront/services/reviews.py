import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.sql import func

from storefront.errors import Conflict, NotFound, PurchaseRequired, Unauthorized
from storefront.models import Order, OrderItem, OrderStatus, Review, ReviewStatus

logger = logging.getLogger(__name__)


def serialize_review(r: Review) -> dict:
    return {
        "id":          str(r.id),
        "user_id":     str(r.user_id),
        "product_id":  str(r.product_id),
        "rating":      r.rating,
        "comment":     r.comment,
        "status":      r.status,
        "admin_id":    str(r.admin_id) if r.admin_id else None,
        "admin_reply": r.admin_reply,
        "replied_at":  r.replied_at,
        "created_at":  r.created_at,
        "updated_at":  r.updated_at,
    }


def _get_review(db: Session, review_id) -> Review:
    review = db.query(Review).filter(Review.id == review_id).first()
    if not review:
        raise NotFound("Review not found")
    return review


def _authorize(review: Review, actor_id, is_admin: bool, action: str) -> None:
    if review.user_id != actor_id and not is_admin:
        raise Unauthorized(f"Not authorized to {action} this review")


def has_purchased(db: Session, user_id, product_id) -> bool:
    """True when the user has the product in at least one completed order."""
    hit = (
        db.query(OrderItem.id)
        .join(Order, OrderItem.order_id == Order.id)
        .filter(
            Order.user_id == user_id,
            OrderItem.product_id == product_id,
            Order.status == OrderStatus.completed,
        )
        .first()
    )
    return hit is not None


# =====================================================
# USER: CREATE / UPDATE / DELETE
# =====================================================

def create_review(db: Session, user_id, product_id, rating: int, comment: Optional[str]) -> Review:
    if not has_purchased(db, user_id, product_id):
        raise PurchaseRequired()

    existing = (
        db.query(Review.id)
        .filter(Review.user_id == user_id, Review.product_id == product_id)
        .first()
    )
    if existing:
        raise Conflict("You have already reviewed this product")

    review = Review(
        user_id    = user_id,
        product_id = product_id,
        rating     = rating,
        comment    = comment,
        status     = ReviewStatus.pending,
    )
    db.add(review)

    # the purchase check and insert are separate statements; the unique
    # constraint catches a concurrent duplicate
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("You have already reviewed this product")

    db.refresh(review)
    logger.info("Review created | review_id=%s | user_id=%s | product_id=%s", review.id, user_id, product_id)
    return review


def update_review(
    db: Session,
    review_id,
    actor_id,
    is_admin: bool,
    rating: int,
    comment: Optional[str],
) -> Review:
    review = _get_review(db, review_id)
    _authorize(review, actor_id, is_admin, "update")

    review.rating = rating
    review.comment = comment
    # admin edits publish directly, author edits go back to moderation
    review.status = ReviewStatus.approved if is_admin else ReviewStatus.pending

    db.commit()
    db.refresh(review)
    return review


def delete_review(db: Session, review_id, actor_id, is_admin: bool) -> None:
    review = _get_review(db, review_id)
    _authorize(review, actor_id, is_admin, "delete")

    db.delete(review)
    db.commit()
    logger.info("Review deleted | review_id=%s | actor_id=%s", review_id, actor_id)


# =====================================================
# LISTINGS
# =====================================================

def list_product_reviews(db: Session, product_id) -> list[dict]:
    reviews = (
        db.query(Review)
        .options(joinedload(Review.user), joinedload(Review.admin))
        .filter(Review.product_id == product_id, Review.status == ReviewStatus.approved)
        .order_by(Review.created_at.desc())
        .all()
    )
    return [
        {
            **serialize_review(r),
            "user_name":    r.user.name if r.user else None,
            "user_avatar":  r.user.avatar if r.user else None,
            "admin_name":   r.admin.name if r.admin else None,
            "admin_avatar": r.admin.avatar if r.admin else None,
        }
        for r in reviews
    ]


def list_pending_reviews(db: Session) -> list[dict]:
    reviews = (
        db.query(Review)
        .options(joinedload(Review.user), joinedload(Review.product))
        .filter(Review.status == ReviewStatus.pending)
        .order_by(Review.created_at.desc())
        .all()
    )
    return [
        {
            **serialize_review(r),
            "user_name":    r.user.name if r.user else None,
            "product_name": r.product.name if r.product else None,
        }
        for r in reviews
    ]


# =====================================================
# ADMIN: MODERATION
# =====================================================

def approve_review(db: Session, review_id, admin_id) -> Review:
    updated = (
        db.query(Review)
        .filter(Review.id == review_id, Review.status == ReviewStatus.pending)
        .update(
            {Review.status: ReviewStatus.approved, Review.admin_id: admin_id},
            synchronize_session=False,
        )
    )
    if not updated:
        raise NotFound("Review not found or already approved")

    db.commit()
    logger.info("Review approved | review_id=%s | admin_id=%s", review_id, admin_id)
    return _get_review(db, review_id)


def reply_to_review(db: Session, review_id, admin_id, reply: str) -> Review:
    updated = (
        db.query(Review)
        .filter(Review.id == review_id, Review.status == ReviewStatus.approved)
        .update(
            {
                Review.admin_reply: reply,
                Review.admin_id: admin_id,
                Review.replied_at: func.now(),
            },
            synchronize_session=False,
        )
    )
    if not updated:
        raise NotFound("Review not found or not approved")

    db.commit()
    return _get_review(db, review_id)
