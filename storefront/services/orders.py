import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from storefront.errors import NotFound, OrderCreationFailed, PaymentIncomplete, ValidationFailed
from storefront.models import Order, OrderItem, OrderStatus, PaymentStatus, Product, User

logger = logging.getLogger(__name__)


# =====================================================
# SERIALIZATION
# =====================================================

def serialize_order(o: Order, include_items: bool = True) -> dict:
    data = {
        "id":                str(o.id),
        "user_id":           str(o.user_id),
        "shipping_address":  o.shipping_address,
        "payment_method":    o.payment_method,
        "items_price":       o.items_price,
        "tax_price":         o.tax_price,
        "shipping_price":    o.shipping_price,
        "total_price":       o.total_price,
        "status":            o.status,
        "payment_status":    o.payment_status,
        "payment_intent_id": o.payment_intent_id,
        "paypal_order_id":   o.paypal_order_id,
        "created_at":        o.created_at,
        "updated_at":        o.updated_at,
    }
    if include_items:
        data["order_items"] = [
            {
                "product_id": str(i.product_id) if i.product_id else None,
                "name":       i.name,
                "qty":        i.qty,
                "price":      i.price,
                "image":      i.image,
            }
            for i in o.items
        ]
    return data


# =====================================================
# CREATE
# =====================================================

def _add_line_item(db: Session, order: Order, item: dict) -> None:
    db.add(OrderItem(
        order_id   = order.id,
        product_id = item["product_id"],
        name       = item["name"],
        price      = item["price"],
        image      = item.get("image"),
        qty        = item["qty"],
    ))

    # SQL-side decrement; stock is allowed to go negative
    updated = (
        db.query(Product)
        .filter(Product.id == item["product_id"])
        .update(
            {Product.count_in_stock: Product.count_in_stock - item["qty"]},
            synchronize_session=False,
        )
    )
    if not updated:
        raise LookupError(f"Product {item['product_id']} not found")


def create_order(
    db: Session,
    user_id,
    items: list[dict],
    shipping_address: Optional[dict],
    payment_method: Optional[str],
    items_price: float,
    tax_price: float,
    shipping_price: float,
    total_price: float,
) -> Order:
    """
    Persists an order, its line items and the stock adjustments in one
    transaction. Any failure rolls everything back and surfaces as
    OrderCreationFailed; nothing from the attempt is kept.
    """
    if not items:
        raise ValidationFailed("No order items")

    try:
        order = Order(
            user_id          = user_id,
            shipping_address = shipping_address,
            payment_method   = payment_method,
            items_price      = items_price,
            tax_price        = tax_price,
            shipping_price   = shipping_price,
            total_price      = total_price,
            status           = OrderStatus.pending,
            payment_status   = PaymentStatus.pending,
        )
        db.add(order)
        db.flush()

        for item in items:
            _add_line_item(db, order, item)

        db.commit()
    except Exception as exc:
        db.rollback()
        logger.exception("Order creation failed | user_id=%s | items=%s", user_id, len(items))
        raise OrderCreationFailed() from exc

    logger.info("Order created | order_id=%s | user_id=%s | items=%s", order.id, user_id, len(items))

    return get_order(db, order.id)


# =====================================================
# READ
# =====================================================

def get_order(db: Session, order_id, user_id=None) -> Order:
    """Loads an order with its items. ``user_id`` scopes the lookup to that owner."""
    query = (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.id == order_id)
    )
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)

    order = query.first()
    if not order:
        raise NotFound("Order not found")
    return order


def list_orders(db: Session) -> list[dict]:
    rows = (
        db.query(Order, User.name, User.email)
        .join(User, Order.user_id == User.id)
        .order_by(Order.created_at.desc())
        .all()
    )
    return [
        {
            **serialize_order(o, include_items=False),
            "user_name":  name,
            "user_email": email,
        }
        for o, name, email in rows
    ]


def list_user_orders(db: Session, user_id) -> list[Order]:
    return (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc())
        .all()
    )


# =====================================================
# ADMIN: STATUS / DELETE
# =====================================================

def update_order_status(db: Session, order_id, status: OrderStatus) -> Order:
    # No transition table: any status may overwrite any other
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFound("Order not found")

    old_status = order.status
    order.status = status
    db.commit()

    logger.info("Order status updated | order_id=%s | %s -> %s", order_id, old_status, status)
    return get_order(db, order_id)


def delete_order(db: Session, order_id) -> None:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFound("Order not found")

    db.delete(order)
    db.commit()

    logger.info("Order deleted | order_id=%s", order_id)


# =====================================================
# ADMIN: REPORTS
# =====================================================

def order_report(
    db: Session,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[OrderStatus] = None,
) -> list[dict]:
    """
    Order count and sales grouped by calendar day and status, newest day first.
    Every filter is optional; the ones given are AND-combined. ``end_date``
    covers the whole of that day.
    """
    day = func.date(Order.created_at)

    query = db.query(
        day.label("date"),
        func.count(Order.id).label("total_orders"),
        func.sum(Order.total_price).label("total_sales"),
        Order.status,
    )

    if start_date:
        query = query.filter(Order.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(Order.created_at < datetime.combine(end_date + timedelta(days=1), time.min))
    if status:
        query = query.filter(Order.status == status)

    rows = query.group_by(day, Order.status).order_by(day.desc()).all()

    return [
        {
            "date":         str(r.date),
            "total_orders": r.total_orders,
            "total_sales":  round(float(r.total_sales or 0), 2),
            "status":       r.status,
        }
        for r in rows
    ]


# =====================================================
# USER: PAYMENT VERIFICATION
# =====================================================

def verify_order_payment(db: Session, order_id, user_id) -> dict:
    order = get_order(db, order_id, user_id=user_id)

    if order.payment_status != PaymentStatus.completed:
        raise PaymentIncomplete()

    return {"verified": True, "order": serialize_order(order)}
