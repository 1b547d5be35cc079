from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlmodel import Session

from .. import offers as offer_service
from ..auth import require_developer, require_investor, resolve_current_user
from ..db import get_session
from ..email import notify, send_offer_notification, send_offer_response_notification
from ..gates import check_offer_access
from ..models import Project, User
from ..schemas import OfferCreate, OfferRespond

router = APIRouter()

@router.post("", status_code=status.HTTP_201_CREATED)
def create_offer(
    payload: OfferCreate,
    background: BackgroundTasks,
    session: Session = Depends(get_session),
    investor: User = Depends(require_investor),
):
    check_offer_access(session, investor, payload.project_id)
    offer, project = offer_service.create_offer(session, investor, payload)
    developer = session.get(User, project.developer_id)
    session.refresh(investor)
    if developer:
        background.add_task(notify, send_offer_notification, developer, investor, offer, project)
    return {"message": "Offer submitted successfully", "offer": offer_service.offer_to_response(offer, project)}

@router.get("")
def list_offers(
    session: Session = Depends(get_session),
    user: User = Depends(resolve_current_user),
):
    response = []
    for offer in offer_service.list_offers(session, user):
        project = session.get(Project, offer.project_id)
        investor = session.get(User, offer.investor_id)
        response.append(offer_service.offer_to_response(offer, project, investor))
    return {"offers": response}

@router.get("/{offer_id}")
def get_offer(
    offer_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(resolve_current_user),
):
    offer, project = offer_service.load_offer(session, user, offer_id)
    investor = session.get(User, offer.investor_id)
    term_sheet = offer_service.term_sheet_for_offer(session, offer.id)
    return {"offer": offer_service.offer_to_response(offer, project, investor, term_sheet)}

@router.post("/{offer_id}/respond")
def respond(
    offer_id: int,
    payload: OfferRespond,
    background: BackgroundTasks,
    session: Session = Depends(get_session),
    developer: User = Depends(require_developer),
):
    offer, project, term_sheet = offer_service.respond(session, developer, offer_id, payload)
    investor = session.get(User, offer.investor_id)
    if investor:
        background.add_task(
            notify, send_offer_response_notification, investor, offer, project, term_sheet is not None
        )
    verb = "accepted" if term_sheet is not None else "rejected"
    return {
        "message": f"Offer {verb} successfully",
        "offer": offer_service.offer_to_response(offer, project, investor, term_sheet),
    }

@router.delete("/{offer_id}")
def withdraw(
    offer_id: int,
    session: Session = Depends(get_session),
    investor: User = Depends(require_investor),
):
    offer = offer_service.withdraw(session, investor, offer_id)
    return {"message": "Offer withdrawn successfully", "offer": offer_service.offer_to_response(offer)}
