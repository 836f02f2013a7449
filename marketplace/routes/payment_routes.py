from fastapi import APIRouter
from starlette.requests import Request
from uuid import UUID
import logging

from marketplace.dependencies import CurrentUserDep, DBSessionDep, InstructorDep, PageDep, VerifiedUserDep
from marketplace.payments import create_intent, get_payment, handle_webhook, instructor_earnings, list_payments
from marketplace.schemas import (
    CreatePaymentIntentRequest, InstructorEarnings, PaginatedPayments, PaymentIntentResponse, PaymentOut,
    WebhookAck,
)
from marketplace.utils import build_pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(payload: CreatePaymentIntentRequest, current_user: VerifiedUserDep, db: DBSessionDep):
    """Start a course purchase; the client confirms the intent with Stripe directly."""
    return await create_intent(db, current_user, payload.course_id)


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(request: Request, db: DBSessionDep):
    # Signature is checked over the exact bytes received, so read the raw body
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    await handle_webhook(db, payload, sig_header)
    return WebhookAck()


@router.get("/history", response_model=PaginatedPayments)
async def payment_history(current_user: CurrentUserDep, db: DBSessionDep, pages: PageDep):
    page, limit = pages
    total, payments = await list_payments(db, current_user.id, page, limit)
    return PaginatedPayments(
        payments=[PaymentOut.model_validate(p) for p in payments],
        pagination=build_pagination(page, limit, total),
    )


@router.get("/instructor/earnings", response_model=InstructorEarnings)
async def earnings(current_user: InstructorDep, db: DBSessionDep):
    return await instructor_earnings(db, current_user.id)


@router.get("/{payment_id}", response_model=PaymentOut)
async def payment_detail(payment_id: UUID, current_user: CurrentUserDep, db: DBSessionDep):
    return await get_payment(db, current_user, payment_id)
