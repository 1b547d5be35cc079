"""NDA and viewing-fee checks in front of full project details.

Only investors pass through the gates. A view credit is consumed at most once
per (investor, project): the decrement is a conditional UPDATE and the
ProjectView row is protected by a unique constraint, so two racing requests
cannot both charge the investor.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .errors import nda_expired, nda_required, no_views_remaining, payment_required
from .models import NDA, Payment, PaymentStatus, Project, ProjectView, User
from .utils import utcnow

logger = logging.getLogger(__name__)

def latest_nda(session: Session, investor_id: int) -> Optional[NDA]:
    return session.exec(
        select(NDA).where(NDA.investor_id == investor_id).order_by(NDA.signed_at.desc(), NDA.id.desc())
    ).first()

def check_nda(session: Session, investor_id: int, now: Optional[datetime] = None) -> NDA:
    nda = latest_nda(session, investor_id)
    if not nda:
        raise nda_required()
    if not nda.is_valid(now):
        raise nda_expired()
    return nda

def has_viewed(session: Session, investor_id: int, project_id: int) -> bool:
    return session.exec(
        select(ProjectView.id).where(ProjectView.investor_id == investor_id, ProjectView.project_id == project_id)
    ).first() is not None

def active_payments(session: Session, investor_id: int) -> List[Payment]:
    # oldest bundle is drained first
    return list(session.exec(
        select(Payment)
        .where(
            Payment.investor_id == investor_id,
            Payment.status == PaymentStatus.COMPLETED,
            Payment.projects_remaining > 0,
        )
        .order_by(Payment.created_at, Payment.id)
    ).all())

def remaining_views(session: Session, investor_id: int) -> int:
    total = session.exec(
        select(func.coalesce(func.sum(Payment.projects_remaining), 0)).where(
            Payment.investor_id == investor_id,
            Payment.status == PaymentStatus.COMPLETED,
        )
    ).one()
    return int(total or 0)

def check_payment(session: Session, investor_id: int) -> List[Payment]:
    payments = active_payments(session, investor_id)
    if payments:
        return payments
    any_completed = session.exec(
        select(Payment.id).where(Payment.investor_id == investor_id, Payment.status == PaymentStatus.COMPLETED)
    ).first()
    if any_completed is None:
        raise payment_required()
    raise no_views_remaining()

def consume_view_credit(session: Session, investor_id: int, project_id: int) -> bool:
    """Charge one credit and record the view.

    Returns True when a credit was consumed, False when the project turned out
    to be unlocked already by a concurrent request.
    """
    for payment in check_payment(session, investor_id):
        result = session.exec(
            update(Payment)
            .where(
                Payment.id == payment.id,
                Payment.status == PaymentStatus.COMPLETED,
                Payment.projects_remaining > 0,
            )
            .values(projects_remaining=Payment.projects_remaining - 1, updated_at=utcnow())
        )
        if result.rowcount != 1:
            # drained between the read and the update; try the next bundle
            continue
        session.add(ProjectView(investor_id=investor_id, project_id=project_id, payment_id=payment.id))
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.info("investor %s already unlocked project %s", investor_id, project_id)
            return False
        logger.info("investor %s unlocked project %s using payment %s", investor_id, project_id, payment.id)
        return True
    raise no_views_remaining()

def unlock_project(session: Session, investor: User, project: Project) -> dict:
    """Run the gate chain for an investor and consume a credit when needed."""
    check_nda(session, investor.id)
    if has_viewed(session, investor.id, project.id):
        return {"already_viewed": True, "projects_remaining": remaining_views(session, investor.id)}
    consumed = consume_view_credit(session, investor.id, project.id)
    if consumed:
        session.exec(
            update(Project).where(Project.id == project.id).values(view_count=Project.view_count + 1)
        )
        session.commit()
        session.refresh(project)
    return {"already_viewed": not consumed, "projects_remaining": remaining_views(session, investor.id)}

def check_offer_access(session: Session, investor: User, project_id: int) -> None:
    """Offers need a valid NDA plus either an unlocked project or spare credits."""
    check_nda(session, investor.id)
    if not has_viewed(session, investor.id, project_id):
        check_payment(session, investor.id)
