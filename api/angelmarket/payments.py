import logging
from typing import List, Optional, Tuple

import stripe
from sqlmodel import Session, select

from .config import MAX_PROJECT_VIEWS, STRIPE_SECRET_KEY, VIEW_FEE_AMOUNT, VIEW_FEE_CURRENCY
from .errors import APIError
from .models import Payment, PaymentStatus, Project, ProjectView, User
from .gates import active_payments
from .utils import utcnow

logger = logging.getLogger(__name__)

stripe.api_key = STRIPE_SECRET_KEY

DEMO_CLIENT_SECRET = "demo_mode"

def gateway_enabled() -> bool:
    return bool(stripe.api_key)

def get_active_payment(session: Session, investor_id: int) -> Optional[Payment]:
    payments = active_payments(session, investor_id)
    return payments[0] if payments else None

def create_intent(session: Session, investor: User) -> Tuple[Payment, str]:
    if get_active_payment(session, investor.id):
        raise APIError(409, "ACTIVE_PAYMENT_EXISTS", "You already have an active payment with remaining project views")

    payment = Payment(
        investor_id=investor.id,
        amount=VIEW_FEE_AMOUNT,
        currency=VIEW_FEE_CURRENCY,
        status=PaymentStatus.PENDING,
        projects_remaining=MAX_PROJECT_VIEWS,
        projects_total=MAX_PROJECT_VIEWS,
        description=f"Project viewing fee - access to view up to {MAX_PROJECT_VIEWS} projects",
    )
    session.add(payment)
    session.commit()
    session.refresh(payment)

    if not gateway_enabled():
        logger.info("payment %s created in demo mode for investor %s", payment.id, investor.id)
        return payment, DEMO_CLIENT_SECRET

    try:
        intent = stripe.PaymentIntent.create(
            amount=payment.amount,
            currency=payment.currency,
            description=payment.description,
            metadata={"payment_id": str(payment.id), "investor_id": str(investor.id)},
            automatic_payment_methods={"enabled": True},
        )
    except stripe.StripeError as e:
        logger.error("Stripe error creating payment intent: %s", e)
        session.delete(payment)
        session.commit()
        raise APIError(502, "PAYMENT_GATEWAY_ERROR", "Failed to create payment intent")

    payment.gateway_payment_id = intent.id
    payment.updated_at = utcnow()
    session.add(payment)
    session.commit()
    session.refresh(payment)
    logger.info("payment %s created with intent %s", payment.id, intent.id)
    return payment, intent.client_secret

def _verify_with_gateway(session: Session, payment: Payment, gateway_payment_id: Optional[str]):
    intent_id = gateway_payment_id or payment.gateway_payment_id
    if not intent_id or (payment.gateway_payment_id and intent_id != payment.gateway_payment_id):
        raise APIError(400, "PAYMENT_NOT_VERIFIED", "Payment intent does not match this payment")
    try:
        intent = stripe.PaymentIntent.retrieve(intent_id, expand=["latest_charge"])
    except stripe.StripeError as e:
        logger.error("Stripe error retrieving payment intent %s: %s", intent_id, e)
        raise APIError(502, "PAYMENT_GATEWAY_ERROR", "Failed to verify payment")

    if intent.status != "succeeded":
        if intent.status in ("canceled", "requires_payment_method"):
            payment.status = PaymentStatus.FAILED
            payment.updated_at = utcnow()
            session.add(payment)
            session.commit()
            logger.info("payment %s marked failed (intent status %s)", payment.id, intent.status)
        raise APIError(400, "PAYMENT_NOT_SUCCESSFUL", "Payment not successful")

    charge = getattr(intent, "latest_charge", None)
    receipt_url = getattr(charge, "receipt_url", None) if charge else None
    if receipt_url:
        payment.receipt_url = receipt_url

def confirm(
    session: Session,
    investor: User,
    payment_id: int,
    gateway_payment_id: Optional[str] = None,
    demo_mode: bool = False,
) -> Payment:
    payment = session.get(Payment, payment_id)
    if not payment or payment.investor_id != investor.id:
        raise APIError(404, "NOT_FOUND", "payment not found")
    if payment.status != PaymentStatus.PENDING:
        raise APIError(409, "PAYMENT_ALREADY_PROCESSED", "payment already processed")

    if gateway_enabled():
        if demo_mode:
            raise APIError(400, "DEMO_MODE_DISABLED", "Demo confirmation is not available")
        _verify_with_gateway(session, payment, gateway_payment_id)

    now = utcnow()
    payment.status = PaymentStatus.COMPLETED
    payment.completed_at = now
    payment.updated_at = now
    session.add(payment)
    session.commit()
    session.refresh(payment)
    logger.info("payment %s completed for investor %s", payment.id, investor.id)
    return payment

def payment_history(session: Session, investor_id: int) -> List[Payment]:
    return list(session.exec(
        select(Payment).where(Payment.investor_id == investor_id).order_by(Payment.created_at.desc(), Payment.id.desc())
    ).all())

def viewed_projects(session: Session, investor_id: int) -> List[dict]:
    rows = session.exec(
        select(ProjectView, Project)
        .join(Project, Project.id == ProjectView.project_id)
        .where(ProjectView.investor_id == investor_id)
        .order_by(ProjectView.viewed_at.desc())
    ).all()
    return [
        {
            "project_id": view.project_id,
            "title": project.title,
            "tagline": project.tagline,
            "payment_id": view.payment_id,
            "viewed_at": view.viewed_at,
        }
        for view, project in rows
    ]
