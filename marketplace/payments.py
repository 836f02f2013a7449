"""Course purchases through Stripe payment intents.

A purchase is a Payment row that starts ``PENDING`` when the intent is created
and is moved to ``COMPLETED`` or ``FAILED`` only by the Stripe webhook. Every
webhook update is conditioned on the row still being ``PENDING``, so a
redelivered event matches nothing and changes nothing.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.crud import (
    get_course, get_enrollment_for, increment_enrollment_count, upsert_active_enrollment,
)
from marketplace.dependencies import AuthenticatedUser
from marketplace.errors import (
    AlreadyEnrolled, CourseNotFound, Forbidden, FreeCourse, InvalidSignature, InvalidWebhookPayload,
    PaymentNotFound, SelfEnrollmentForbidden,
)
from marketplace.models import Course, EnrollmentStatus, Payment, PaymentStatus, utcnow
from marketplace.stripe_client import StripeClient

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


def to_minor_units(amount: Decimal) -> int:
    """Dollars to integer cents, rounding half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_amount(amount: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(platform_fee, instructor_amount)`` for a sale of ``amount``."""
    amount = Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)
    platform_fee = (amount * settings.platform_fee_percent / 100).quantize(CENTS, rounding=ROUND_HALF_UP)
    return platform_fee, amount - platform_fee


async def create_intent(db: AsyncSession, user: AuthenticatedUser, course_id: UUID) -> Dict[str, Any]:
    course = await get_course(db, course_id)
    if course is None:
        raise CourseNotFound()

    if course.instructor_id == user.id:
        raise SelfEnrollmentForbidden()

    existing = await get_enrollment_for(db, user.id, course.id)
    if existing is not None and existing.status in (EnrollmentStatus.ACTIVE, EnrollmentStatus.COMPLETED):
        raise AlreadyEnrolled()

    price = Decimal(course.effective_price).quantize(CENTS, rounding=ROUND_HALF_UP)
    amount_cents = to_minor_units(price)
    if amount_cents <= 0:
        raise FreeCourse()

    intent = StripeClient.create_payment_intent(
        amount=amount_cents,
        currency=settings.stripe_currency,
        metadata={
            "courseId": str(course.id),
            "studentId": str(user.id),
            "courseTitle": course.title,
        },
    )

    platform_fee, instructor_amount = split_amount(price)
    payment = Payment(
        user_id=user.id,
        course_id=course.id,
        amount=price,
        platform_fee=platform_fee,
        instructor_amount=instructor_amount,
        currency=settings.stripe_currency,
        stripe_payment_intent_id=intent.id,
        status=PaymentStatus.PENDING,
    )
    db.add(payment)
    await db.commit()

    logger.info(f"Created payment intent {intent.id} for course {course.id} by user {user.id}")
    return {
        "client_secret": intent.client_secret,
        "payment_id": payment.id,
        "amount": float(price),
    }


async def handle_webhook(db: AsyncSession, payload: bytes, sig_header: Optional[str]) -> None:
    """Verify and apply a Stripe webhook delivery."""
    try:
        event = StripeClient.get_webhook_event(payload, sig_header, settings.stripe_webhook_secret)
    except (InvalidSignature, InvalidWebhookPayload) as e:
        logger.warning(f"Webhook verification failed: {e.message}")
        raise

    event_type = event["type"]
    logger.info(f"Webhook Event: {event_type}")

    if event_type not in (PAYMENT_SUCCEEDED, PAYMENT_FAILED):
        logger.info(f"Unhandled event type: {event_type}")
        return

    try:
        intent = StripeClient.parse_payment_intent(event)
    except InvalidWebhookPayload:
        logger.warning(f"Malformed {event_type} event")
        raise

    if event_type == PAYMENT_SUCCEEDED:
        await handle_payment_success(db, intent)
    else:
        await handle_payment_failure(db, intent)


def _parse_uuid(value: Optional[str]) -> Optional[UUID]:
    try:
        return UUID(str(value)) if value else None
    except ValueError:
        return None


async def handle_payment_success(db: AsyncSession, intent: Dict[str, Any]) -> bool:
    """Complete the pending payment, activate the enrollment, bump the counter.

    All three writes commit together. Returns ``False`` when the event was
    malformed or already applied.
    """
    course_id = _parse_uuid(intent["course_id"])
    student_id = _parse_uuid(intent["student_id"])
    if not intent["payment_intent_id"] or course_id is None or student_id is None:
        logger.error(f"Missing metadata in payment intent: {intent['payment_intent_id']}")
        return False

    try:
        result = await db.execute(
            update(Payment)
            .where(
                Payment.stripe_payment_intent_id == intent["payment_intent_id"],
                Payment.status == PaymentStatus.PENDING,
            )
            .values(status=PaymentStatus.COMPLETED, completed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            logger.info(f"No pending payment for intent {intent['payment_intent_id']}; ignoring")
            return False

        activated = await upsert_active_enrollment(db, student_id, course_id)
        if activated:
            await increment_enrollment_count(db, course_id)
        else:
            logger.warning(
                f"Payment {intent['payment_intent_id']} completed but student {student_id} "
                f"was already enrolled in course {course_id}; refund may be needed"
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Payment successful for course {course_id} and student {student_id}")
    return True


async def handle_payment_failure(db: AsyncSession, intent: Dict[str, Any]) -> bool:
    if not intent["payment_intent_id"]:
        logger.error("Missing id in failed payment intent event")
        return False

    result = await db.execute(
        update(Payment)
        .where(
            Payment.stripe_payment_intent_id == intent["payment_intent_id"],
            Payment.status == PaymentStatus.PENDING,
        )
        .values(status=PaymentStatus.FAILED)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info(f"Payment failed for payment intent: {intent['payment_intent_id']}")
    return result.rowcount > 0


async def list_payments(db: AsyncSession, user_id: UUID, page: int, limit: int):
    where = Payment.user_id == user_id
    total = await db.scalar(select(func.count()).select_from(Payment).where(where))
    result = await db.execute(
        select(Payment)
        .where(where)
        .order_by(Payment.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return total, result.scalars().all()


async def get_payment(db: AsyncSession, user: AuthenticatedUser, payment_id: UUID) -> Payment:
    result = await db.execute(select(Payment).where(Payment.id == payment_id))
    payment = result.scalar_one_or_none()
    if payment is None:
        raise PaymentNotFound()
    if payment.user_id != user.id:
        raise Forbidden("Unauthorized access to payment")
    return payment


async def instructor_earnings(db: AsyncSession, instructor_id: UUID, recent: int = 10) -> Dict[str, Any]:
    sold = (Course.instructor_id == instructor_id, Payment.status == PaymentStatus.COMPLETED)
    totals = await db.execute(
        select(func.coalesce(func.sum(Payment.instructor_amount), 0), func.count(Payment.id))
        .join(Course, Course.id == Payment.course_id)
        .where(*sold)
    )
    total_earnings, total_sales = totals.one()
    result = await db.execute(
        select(Payment)
        .join(Course, Course.id == Payment.course_id)
        .where(*sold)
        .order_by(Payment.completed_at.desc())
        .limit(recent)
    )
    return {
        "total_earnings": float(total_earnings or 0),
        "total_sales": total_sales,
        "recent_payments": result.scalars().all(),
    }
