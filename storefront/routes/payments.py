import uuid

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from storefront.database import get_db
from storefront.dependencies import get_current_user
from storefront.models import User
from storefront.services import payments as payment_service

router = APIRouter(prefix="/payment", tags=["payments"])


# =====================================================
# Pydantic Schemas
# =====================================================

class CreatePaymentPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: uuid.UUID = Field(alias="orderId")
    amount: float = Field(gt=0)


class CapturePayPalPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    paypal_order_id: str = Field(alias="orderID", min_length=1)


# =====================================================
# STRIPE
# =====================================================

@router.post("/stripe/create-payment-intent")
def create_payment_intent(
    payload: CreatePaymentPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return payment_service.create_stripe_intent(
        db,
        order_id=payload.order_id,
        amount=payload.amount,
        user_id=user.id,
    )


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Public endpoint called by Stripe. The raw body is required for
    signature verification, so it is read before any JSON parsing.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    return await run_in_threadpool(
        payment_service.handle_stripe_webhook,
        db,
        payload,
        signature,
    )


# =====================================================
# PAYPAL
# =====================================================

@router.post("/paypal/create-order")
def create_paypal_order(
    payload: CreatePaymentPayload,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return payment_service.create_paypal_order(
        db,
        order_id=payload.order_id,
        amount=payload.amount,
        user_id=user.id,
    )


@router.post("/paypal/capture-order", dependencies=[Depends(get_current_user)])
def capture_paypal_order(
    payload: CapturePayPalPayload,
    db: Session = Depends(get_db),
):
    return payment_service.capture_paypal_order(db, payload.paypal_order_id)
