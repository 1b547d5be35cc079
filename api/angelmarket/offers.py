"""Investment offers and the SAFE term sheets created from them.

Offers expire lazily: a pending offer past its expiry is persisted as expired
the next time it is loaded. Term sheet status is always derived from which
signatures are present.
"""
import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .config import DEFAULT_DISCOUNT_RATE, OFFER_TTL_DAYS
from .documents import build_sealed_safe, render_safe_pdf
from .errors import APIError, document_generation_failed
from .models import (
    InvestmentOffer,
    OfferStatus,
    Project,
    ProjectStatus,
    TermSheet,
    TermSheetStatus,
    User,
    UserRole,
)
from .schemas import OfferCreate, OfferRespond
from .storage import get_bytes, put_bytes, term_sheet_document_key
from .utils import utcnow

logger = logging.getLogger(__name__)

INVESTOR = "investor"
DEVELOPER = "developer"

def _not_found(what: str) -> APIError:
    return APIError(404, "NOT_FOUND", f"{what} not found")

def _forbidden() -> APIError:
    return APIError(403, "FORBIDDEN", "Access denied")

def expire_if_due(session: Session, offer: InvestmentOffer, now: Optional[datetime] = None) -> bool:
    if offer.status == OfferStatus.PENDING and offer.is_expired(now):
        offer.status = OfferStatus.EXPIRED
        offer.updated_at = utcnow()
        session.add(offer)
        session.commit()
        session.refresh(offer)
        logger.info("offer %s expired", offer.id)
        return True
    return False

def expire_stale(session: Session, offers: Iterable[InvestmentOffer], now: Optional[datetime] = None) -> None:
    for offer in offers:
        expire_if_due(session, offer, now)

def offer_to_response(offer: InvestmentOffer, project: Optional[Project] = None, investor: Optional[User] = None, term_sheet: Optional[TermSheet] = None) -> dict:
    data = offer.model_dump()
    if project is not None:
        data["project"] = {"id": project.id, "title": project.title, "tagline": project.tagline, "developer_id": project.developer_id}
    if investor is not None:
        data["investor"] = {
            "id": investor.id,
            "name": investor.full_name,
            "email": investor.email,
            "company_name": investor.company_name,
        }
    if term_sheet is not None:
        data["term_sheet"] = term_sheet.to_response()
    return data

def create_offer(session: Session, investor: User, data: OfferCreate) -> Tuple[InvestmentOffer, Project]:
    project = session.get(Project, data.project_id)
    if not project or project.status != ProjectStatus.APPROVED:
        raise APIError(404, "NOT_FOUND", "Project not found or not available")
    if data.offer_amount < project.min_investment:
        raise APIError(
            400,
            "BELOW_MINIMUM_INVESTMENT",
            "Offer below minimum investment",
            min_investment=project.min_investment,
        )

    pending = session.exec(
        select(InvestmentOffer).where(
            InvestmentOffer.investor_id == investor.id,
            InvestmentOffer.project_id == project.id,
            InvestmentOffer.status == OfferStatus.PENDING,
        )
    ).all()
    expire_stale(session, pending)
    if any(o.status == OfferStatus.PENDING for o in pending):
        raise APIError(409, "OFFER_ALREADY_PENDING", "You already have a pending offer for this project")

    now = utcnow()
    offer = InvestmentOffer(
        investor_id=investor.id,
        project_id=project.id,
        offer_amount=data.offer_amount,
        equity_request=data.equity_request,
        terms_notes=data.terms_notes,
        status=OfferStatus.PENDING,
        expires_at=now + timedelta(days=OFFER_TTL_DAYS),
        created_at=now,
        updated_at=now,
    )
    session.add(offer)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise APIError(409, "OFFER_ALREADY_PENDING", "You already have a pending offer for this project")
    session.refresh(offer)
    logger.info("offer %s created by investor %s for project %s", offer.id, investor.id, project.id)
    return offer, project

def list_offers(session: Session, user: User) -> List[InvestmentOffer]:
    stmt = select(InvestmentOffer)
    if user.role == UserRole.INVESTOR:
        stmt = stmt.where(InvestmentOffer.investor_id == user.id)
    elif user.role == UserRole.DEVELOPER:
        stmt = stmt.join(Project, Project.id == InvestmentOffer.project_id).where(Project.developer_id == user.id)
    offers = list(session.exec(stmt.order_by(InvestmentOffer.created_at.desc(), InvestmentOffer.id.desc())).all())
    expire_stale(session, offers)
    return offers

def load_offer(session: Session, user: User, offer_id: int) -> Tuple[InvestmentOffer, Project]:
    offer = session.get(InvestmentOffer, offer_id)
    if not offer:
        raise _not_found("offer")
    project = session.get(Project, offer.project_id)
    if user.role == UserRole.INVESTOR and offer.investor_id != user.id:
        raise _forbidden()
    if user.role == UserRole.DEVELOPER and (not project or project.developer_id != user.id):
        raise _forbidden()
    expire_if_due(session, offer)
    return offer, project

def respond(session: Session, developer: User, offer_id: int, data: OfferRespond) -> Tuple[InvestmentOffer, Project, Optional[TermSheet]]:
    offer, project = load_offer(session, developer, offer_id)
    if not offer.can_respond():
        raise APIError(409, "OFFER_NOT_RESPONDABLE", "Cannot respond to this offer")

    now = utcnow()
    offer.responded_at = now
    offer.updated_at = now
    offer.response_notes = data.response_notes
    term_sheet = None
    if data.action == "accept":
        offer.status = OfferStatus.ACCEPTED
        term_sheet = TermSheet(
            offer_id=offer.id,
            investment_amount=offer.offer_amount,
            valuation_cap=data.valuation_cap or project.valuation_cap,
            discount_rate=data.discount_rate or DEFAULT_DISCOUNT_RATE,
            pro_rata_rights=True,
            status=TermSheetStatus.DRAFT,
        )
        session.add(term_sheet)
    else:
        offer.status = OfferStatus.REJECTED
    session.add(offer)
    session.commit()
    session.refresh(offer)
    if term_sheet is not None:
        session.refresh(term_sheet)
    logger.info("offer %s %s by developer %s", offer.id, offer.status, developer.id)
    return offer, project, term_sheet

def withdraw(session: Session, investor: User, offer_id: int) -> InvestmentOffer:
    offer = session.get(InvestmentOffer, offer_id)
    if not offer or offer.investor_id != investor.id:
        raise _not_found("offer")
    expire_if_due(session, offer)
    if offer.status != OfferStatus.PENDING:
        raise APIError(409, "OFFER_NOT_WITHDRAWABLE", "Can only withdraw pending offers")
    offer.status = OfferStatus.WITHDRAWN
    offer.updated_at = utcnow()
    session.add(offer)
    session.commit()
    session.refresh(offer)
    logger.info("offer %s withdrawn", offer.id)
    return offer

def term_sheet_for_offer(session: Session, offer_id: int) -> Optional[TermSheet]:
    return session.exec(select(TermSheet).where(TermSheet.offer_id == offer_id)).first()

# --- term sheets ---

def derive_term_sheet_status(term_sheet: TermSheet) -> str:
    if term_sheet.status == TermSheetStatus.VOIDED:
        return TermSheetStatus.VOIDED
    if term_sheet.is_fully_signed():
        return TermSheetStatus.COMPLETED
    if term_sheet.investor_signature:
        return TermSheetStatus.INVESTOR_SIGNED
    return TermSheetStatus.DRAFT

class TermSheetContext:
    """A term sheet with the offer, project and both parties loaded."""

    def __init__(self, term_sheet: TermSheet, offer: InvestmentOffer, project: Project, investor: User, developer: User):
        self.term_sheet = term_sheet
        self.offer = offer
        self.project = project
        self.investor = investor
        self.developer = developer

    def side_of(self, user: User) -> Optional[str]:
        if user.id == self.offer.investor_id:
            return INVESTOR
        if user.id == self.project.developer_id:
            return DEVELOPER
        return None

    def to_response(self) -> dict:
        data = self.term_sheet.to_response()
        data["offer"] = offer_to_response(self.offer)
        data["project"] = {"id": self.project.id, "title": self.project.title}
        data["investor"] = {"id": self.investor.id, "name": self.investor.full_name, "company_name": self.investor.company_name}
        data["developer"] = {"id": self.developer.id, "name": self.developer.full_name, "company_name": self.developer.company_name}
        return data

def _context(session: Session, term_sheet: TermSheet) -> TermSheetContext:
    offer = session.get(InvestmentOffer, term_sheet.offer_id)
    project = session.get(Project, offer.project_id) if offer else None
    investor = session.get(User, offer.investor_id) if offer else None
    developer = session.get(User, project.developer_id) if project else None
    if not (offer and project and investor and developer):
        raise _not_found("term sheet")
    return TermSheetContext(term_sheet, offer, project, investor, developer)

def load_term_sheet(session: Session, user: User, term_sheet_id: int) -> TermSheetContext:
    term_sheet = session.get(TermSheet, term_sheet_id)
    if not term_sheet:
        raise _not_found("term sheet")
    ctx = _context(session, term_sheet)
    if user.role != UserRole.ADMIN and ctx.side_of(user) is None:
        raise _forbidden()
    return ctx

def list_term_sheets(session: Session, user: User) -> List[TermSheetContext]:
    stmt = select(TermSheet).join(InvestmentOffer, InvestmentOffer.id == TermSheet.offer_id)
    if user.role == UserRole.INVESTOR:
        stmt = stmt.where(InvestmentOffer.investor_id == user.id)
    elif user.role == UserRole.DEVELOPER:
        stmt = stmt.join(Project, Project.id == InvestmentOffer.project_id).where(Project.developer_id == user.id)
    sheets = session.exec(stmt.order_by(TermSheet.created_at.desc(), TermSheet.id.desc())).all()
    return [_context(session, ts) for ts in sheets]

def _check_signable(term_sheet: TermSheet, side: str):
    if term_sheet.status in (TermSheetStatus.COMPLETED, TermSheetStatus.VOIDED):
        raise APIError(409, "TERM_SHEET_CLOSED", f"term sheet is {term_sheet.status}")
    if getattr(term_sheet, f"{side}_signature"):
        raise APIError(409, "ALREADY_SIGNED", "You have already signed this term sheet")

def sign_term_sheet(session: Session, user: User, term_sheet_id: int, signature_data: str, ip_address: str = "") -> Tuple[TermSheetContext, Optional[bytes]]:
    """Record the caller's signature.

    Returns the loaded context and, when this signature completed the sheet,
    the sealed PDF bytes.
    """
    term_sheet = session.get(TermSheet, term_sheet_id)
    if not term_sheet:
        raise _not_found("term sheet")
    ctx = _context(session, term_sheet)
    side = ctx.side_of(user)
    if side is None:
        raise APIError(403, "FORBIDDEN", "user not authorized to sign this term sheet")
    _check_signable(term_sheet, side)

    now = utcnow()
    signature_col = TermSheet.investor_signature if side == INVESTOR else TermSheet.developer_signature
    result = session.exec(
        update(TermSheet)
        .where(
            TermSheet.id == term_sheet.id,
            signature_col.is_(None),
            TermSheet.status.notin_([TermSheetStatus.COMPLETED, TermSheetStatus.VOIDED]),
        )
        .values(**{
            f"{side}_signature": signature_data,
            f"{side}_signed_at": now,
            f"{side}_ip": ip_address,
            "updated_at": now,
        })
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # lost to a concurrent signature or void
        session.rollback()
        session.refresh(term_sheet)
        _check_signable(term_sheet, side)
        raise APIError(409, "TERM_SHEET_CLOSED", f"term sheet is {term_sheet.status}")

    # the other party may have signed since the sheet was loaded
    session.refresh(term_sheet)
    term_sheet.status = derive_term_sheet_status(term_sheet)

    sealed = None
    if term_sheet.status == TermSheetStatus.COMPLETED:
        try:
            sealed, sha_final = build_sealed_safe(term_sheet, ctx.offer, ctx.project, ctx.investor, ctx.developer)
            key = term_sheet_document_key(term_sheet.id)
            put_bytes(key, sealed, content_type="application/pdf")
        except Exception:
            session.rollback()
            logger.exception("failed to finalize term sheet %s", term_sheet_id)
            raise document_generation_failed("term sheet document")
        term_sheet.document_key = key
        term_sheet.sha256_final = sha_final

    session.add(term_sheet)
    session.commit()
    session.refresh(term_sheet)
    logger.info("term sheet %s signed by %s %s; status %s", term_sheet.id, side, user.id, term_sheet.status)
    return ctx, sealed

def void_term_sheet(session: Session, term_sheet_id: int) -> TermSheet:
    term_sheet = session.get(TermSheet, term_sheet_id)
    if not term_sheet:
        raise _not_found("term sheet")
    if term_sheet.status in (TermSheetStatus.COMPLETED, TermSheetStatus.VOIDED):
        raise APIError(409, "TERM_SHEET_CLOSED", f"term sheet is {term_sheet.status}")
    term_sheet.status = TermSheetStatus.VOIDED
    term_sheet.updated_at = utcnow()
    session.add(term_sheet)
    session.commit()
    session.refresh(term_sheet)
    logger.info("term sheet %s voided", term_sheet.id)
    return term_sheet

def term_sheet_pdf(ctx: TermSheetContext) -> bytes:
    """Sealed document for completed sheets, otherwise a fresh draft rendering."""
    ts = ctx.term_sheet
    if ts.document_key:
        return get_bytes(ts.document_key)
    try:
        return render_safe_pdf(ts, ctx.offer, ctx.project, ctx.investor, ctx.developer)
    except Exception:
        logger.exception("failed to render term sheet %s", ts.id)
        raise document_generation_failed("term sheet document")
