import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy import func
from sqlmodel import Session, select

from .. import offers as offer_service
from ..auth import require_admin
from ..config import VIEW_FEE_CURRENCY
from ..db import get_session
from ..email import notify, send_project_review_notification
from ..errors import APIError
from ..models import (
    Category,
    InvestmentOffer,
    OfferStatus,
    Payment,
    PaymentStatus,
    Project,
    ProjectStatus,
    User,
    UserRole,
)
from ..schemas import CategoryCreate, ProjectReview
from ..utils import format_amount, utcnow
from .projects import project_detail

logger = logging.getLogger(__name__)

router = APIRouter()

def _count(session: Session, model, *conditions) -> int:
    stmt = select(func.count()).select_from(model)
    if conditions:
        stmt = stmt.where(*conditions)
    return session.exec(stmt).one()

@router.get("/stats")
def stats(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    revenue = session.exec(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.status == PaymentStatus.COMPLETED)
    ).one()
    return {
        "stats": {
            "total_users": _count(session, User),
            "total_investors": _count(session, User, User.role == UserRole.INVESTOR),
            "total_developers": _count(session, User, User.role == UserRole.DEVELOPER),
            "total_projects": _count(session, Project),
            "approved_projects": _count(session, Project, Project.status == ProjectStatus.APPROVED),
            "pending_projects": _count(session, Project, Project.status == ProjectStatus.PENDING),
            "total_offers": _count(session, InvestmentOffer),
            "accepted_offers": _count(session, InvestmentOffer, InvestmentOffer.status == OfferStatus.ACCEPTED),
            "total_payments": _count(session, Payment, Payment.status == PaymentStatus.COMPLETED),
            "total_revenue": int(revenue or 0),
            "total_revenue_formatted": format_amount(int(revenue or 0), VIEW_FEE_CURRENCY),
        }
    }

@router.get("/users")
def list_users(
    role: Optional[str] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    stmt = select(User)
    if role:
        stmt = stmt.where(User.role == role)
    users = session.exec(stmt.order_by(User.created_at.desc(), User.id.desc())).all()
    return {"users": [u.to_response() for u in users]}

@router.get("/projects")
def list_projects(
    status: Optional[str] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    stmt = select(Project)
    if status:
        stmt = stmt.where(Project.status == status)
    projects = session.exec(stmt.order_by(Project.created_at.desc(), Project.id.desc())).all()
    return {"projects": [project_detail(session, p) for p in projects]}

@router.get("/projects/pending")
def pending_projects(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    projects = session.exec(
        select(Project).where(Project.status == ProjectStatus.PENDING).order_by(Project.created_at, Project.id)
    ).all()
    return {"projects": [project_detail(session, p) for p in projects]}

@router.post("/projects/{project_id}/approve")
def review_project(
    project_id: int,
    payload: ProjectReview,
    background: BackgroundTasks,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    project = session.get(Project, project_id)
    if not project:
        raise HTTPException(404, "project not found")
    if project.status != ProjectStatus.PENDING:
        raise APIError(409, "PROJECT_NOT_PENDING", "Project is not pending review")

    now = utcnow()
    if payload.approved:
        project.status = ProjectStatus.APPROVED
        project.approved_at = now
        project.approved_by = admin.id
        project.rejection_reason = None
    else:
        reason = payload.reason.strip()
        if not reason:
            raise APIError(400, "REASON_REQUIRED", "Rejection reason is required")
        project.status = ProjectStatus.REJECTED
        project.rejection_reason = reason
    project.updated_at = now
    session.add(project)
    session.commit()
    session.refresh(project)
    logger.info("project %s %s by admin %s", project.id, project.status, admin.id)

    developer = session.get(User, project.developer_id)
    if developer:
        background.add_task(notify, send_project_review_notification, developer, project, payload.approved)
    return {"message": f"Project {project.status}", "project": project_detail(session, project)}

@router.get("/offers")
def list_offers(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    response = []
    for offer in offer_service.list_offers(session, admin):
        project = session.get(Project, offer.project_id)
        investor = session.get(User, offer.investor_id)
        response.append(offer_service.offer_to_response(offer, project, investor))
    return {"offers": response}

@router.get("/payments")
def list_payments(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    rows = session.exec(
        select(Payment, User)
        .join(User, User.id == Payment.investor_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    ).all()
    response = []
    for payment, investor in rows:
        data = payment.to_response()
        data["investor"] = {"id": investor.id, "name": investor.full_name, "email": investor.email}
        response.append(data)
    return {"payments": response}

@router.post("/termsheets/{term_sheet_id}/void")
def void_term_sheet(
    term_sheet_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    term_sheet = offer_service.void_term_sheet(session, term_sheet_id)
    return {"message": "Term sheet voided", "term_sheet": term_sheet.to_response()}

@router.post("/categories", status_code=status.HTTP_201_CREATED)
def create_category(
    payload: CategoryCreate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    name = payload.name.strip()
    if session.exec(select(Category).where(Category.name == name)).first():
        raise APIError(409, "CATEGORY_EXISTS", "category name already exists")
    category = Category(name=name, description=payload.description, icon=payload.icon)
    session.add(category)
    session.commit()
    session.refresh(category)
    return {"message": "Category created", "category": category}

@router.put("/categories/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryCreate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    category = session.get(Category, category_id)
    if not category:
        raise HTTPException(404, "category not found")
    name = payload.name.strip()
    clash = session.exec(select(Category).where(Category.name == name, Category.id != category_id)).first()
    if clash:
        raise APIError(409, "CATEGORY_EXISTS", "category name already exists")
    category.name = name
    category.description = payload.description
    category.icon = payload.icon
    category.updated_at = utcnow()
    session.add(category)
    session.commit()
    session.refresh(category)
    return {"message": "Category updated", "category": category}

@router.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    category = session.get(Category, category_id)
    if not category:
        raise HTTPException(404, "category not found")
    in_use = _count(session, Project, Project.category_id == category_id)
    if in_use:
        raise APIError(400, "CATEGORY_IN_USE", f"Cannot delete category with {in_use} existing projects")
    session.delete(category)
    session.commit()
    return {"message": "Category deleted"}
