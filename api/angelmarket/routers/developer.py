from fastapi import APIRouter, Depends
from sqlalchemy import func, or_
from sqlmodel import Session, select

from ..auth import require_developer
from ..db import get_session
from ..models import InvestmentOffer, OfferStatus, Project, User
from ..offers import list_offers, list_term_sheets, offer_to_response
from ..utils import utcnow
from .projects import project_detail

router = APIRouter()

@router.get("/projects")
def my_projects(
    session: Session = Depends(get_session),
    developer: User = Depends(require_developer),
):
    projects = session.exec(
        select(Project).where(Project.developer_id == developer.id).order_by(Project.created_at.desc(), Project.id.desc())
    ).all()
    counts = dict(session.exec(
        select(InvestmentOffer.project_id, func.count())
        .join(Project, Project.id == InvestmentOffer.project_id)
        .where(
            Project.developer_id == developer.id,
            InvestmentOffer.status == OfferStatus.PENDING,
            or_(InvestmentOffer.expires_at.is_(None), InvestmentOffer.expires_at > utcnow()),
        )
        .group_by(InvestmentOffer.project_id)
    ).all())
    response = []
    for project in projects:
        data = project_detail(session, project)
        data["pending_offers"] = counts.get(project.id, 0)
        response.append(data)
    return {"projects": response}

@router.get("/offers")
def received_offers(
    session: Session = Depends(get_session),
    developer: User = Depends(require_developer),
):
    offers = list_offers(session, developer)
    response = []
    for offer in offers:
        project = session.get(Project, offer.project_id)
        investor = session.get(User, offer.investor_id)
        response.append(offer_to_response(offer, project, investor))
    return {"offers": response}

@router.get("/termsheets")
def my_term_sheets(
    session: Session = Depends(get_session),
    developer: User = Depends(require_developer),
):
    return {"term_sheets": [ctx.to_response() for ctx in list_term_sheets(session, developer)]}
