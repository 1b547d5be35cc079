from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from .. import payments as payment_service
from ..auth import require_investor
from ..config import STRIPE_PUBLISHABLE_KEY
from ..db import get_session
from ..gates import check_nda, remaining_views
from ..models import User
from ..schemas import PaymentConfirm

router = APIRouter()

@router.post("/create-intent", status_code=status.HTTP_201_CREATED)
def create_intent(
    session: Session = Depends(get_session),
    investor: User = Depends(require_investor),
):
    check_nda(session, investor.id)
    payment, client_secret = payment_service.create_intent(session, investor)
    return {
        "payment_id": payment.id,
        "client_secret": client_secret,
        "publishable_key": STRIPE_PUBLISHABLE_KEY,
        "demo_mode": client_secret == payment_service.DEMO_CLIENT_SECRET,
        "amount": payment.amount,
        "amount_formatted": payment.to_response()["amount_formatted"],
        "currency": payment.currency,
        "projects": payment.projects_total,
    }

@router.post("/confirm")
def confirm(
    payload: PaymentConfirm,
    session: Session = Depends(get_session),
    investor: User = Depends(require_investor),
):
    payment = payment_service.confirm(
        session,
        investor,
        payload.payment_id,
        gateway_payment_id=payload.gateway_payment_id,
        demo_mode=payload.demo_mode,
    )
    return {"message": "Payment confirmed successfully", "payment": payment.to_response()}

@router.get("/status")
def payment_status(
    session: Session = Depends(get_session),
    investor: User = Depends(require_investor),
):
    payment = payment_service.get_active_payment(session, investor.id)
    if not payment:
        return {
            "has_active_payment": False,
            "projects_remaining": 0,
            "message": "No active payment. Please make a payment to view projects.",
        }
    return {
        "has_active_payment": True,
        "payment": payment.to_response(),
        "projects_remaining": remaining_views(session, investor.id),
        "projects_total": payment.projects_total,
    }

@router.get("/history")
def history(
    session: Session = Depends(get_session),
    investor: User = Depends(require_investor),
):
    return {"payments": [p.to_response() for p in payment_service.payment_history(session, investor.id)]}

@router.get("/viewed")
def viewed(
    session: Session = Depends(get_session),
    investor: User = Depends(require_investor),
):
    return {"views": payment_service.viewed_projects(session, investor.id)}
