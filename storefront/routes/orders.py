import uuid
from datetime import date
from typing import Optional, List

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.dependencies import get_current_user, require_admin
from storefront.models import OrderStatus, User
from storefront.services import orders as order_service
from storefront.services.orders import serialize_order

router = APIRouter(prefix="/orders", tags=["orders"])


# =====================================================
# PYDANTIC SCHEMAS
# =====================================================

class OrderItemInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: uuid.UUID = Field(alias="product")
    name: str
    qty: int = Field(gt=0)
    price: float = Field(ge=0)
    image: str


class ShippingAddress(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str
    city: str
    postal_code: str = Field(alias="postalCode")
    country: str


class CreateOrderPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_items: List[OrderItemInput] = Field(alias="orderItems")
    shipping_address: ShippingAddress = Field(alias="shippingAddress")
    payment_method: str = Field(alias="paymentMethod")
    items_price: float = Field(alias="itemsPrice", ge=0)
    tax_price: float = Field(alias="taxPrice", ge=0)
    shipping_price: float = Field(alias="shippingPrice", ge=0)
    total_price: float = Field(alias="totalPrice", ge=0)


class UpdateOrderStatusPayload(BaseModel):
    status: OrderStatus


# =====================================================
# USER: CREATE ORDER
# =====================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def create_order(
    payload: CreateOrderPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    order = order_service.create_order(
        db,
        user_id          = user.id,
        items            = [item.model_dump() for item in payload.order_items],
        shipping_address = payload.shipping_address.model_dump(by_alias=True),
        payment_method   = payload.payment_method,
        items_price      = payload.items_price,
        tax_price        = payload.tax_price,
        shipping_price   = payload.shipping_price,
        total_price      = payload.total_price,
    )
    return serialize_order(order)


# =====================================================
# ADMIN: LIST ALL ORDERS
# =====================================================

@router.get("", dependencies=[Depends(require_admin)])
def list_orders(db: Session = Depends(get_db)):
    return order_service.list_orders(db)


# =====================================================
# ADMIN: REPORTS
# ⚠️  Must be registered BEFORE /{order_id}
# =====================================================

@router.get("/reports", dependencies=[Depends(require_admin)])
def order_reports(
    db: Session = Depends(get_db),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
):
    return order_service.order_report(
        db,
        start_date=start_date,
        end_date=end_date,
        status=status_filter,
    )


# =====================================================
# USER: GET SINGLE ORDER
# =====================================================

@router.get("/{order_id}")
def get_order(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    # admins see every order, everyone else only their own
    owner_id = None if user.is_admin else user.id
    return serialize_order(order_service.get_order(db, order_id, user_id=owner_id))


@router.get("/{order_id}/verify")
def verify_order_payment(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return order_service.verify_order_payment(db, order_id, user_id=user.id)


# =====================================================
# ADMIN: UPDATE STATUS / DELETE
# =====================================================

@router.put("/{order_id}", dependencies=[Depends(require_admin)])
def update_order_status(
    order_id: uuid.UUID,
    payload: UpdateOrderStatusPayload,
    db: Session = Depends(get_db),
):
    order = order_service.update_order_status(db, order_id, payload.status)
    return serialize_order(order)


@router.delete("/{order_id}", dependencies=[Depends(require_admin)])
def delete_order(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
):
    order_service.delete_order(db, order_id)
    return {"message": "Order removed"}
