import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy import func, or_
from sqlmodel import Session, select

from ..auth import require_developer, resolve_current_user
from ..db import get_session
from ..errors import APIError
from ..gates import unlock_project
from ..models import Category, Project, ProjectImage, ProjectStatus, User, UserRole
from ..schemas import ProjectCreate
from ..storage import delete_object, project_image_key, put_bytes
from ..utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

def project_images(session: Session, project_id: int):
    return session.exec(
        select(ProjectImage)
        .where(ProjectImage.project_id == project_id)
        .order_by(ProjectImage.display_order, ProjectImage.id)
    ).all()

def _serialize_image(image: ProjectImage):
    return {
        "id": image.id,
        "url": image.url,
        "file_name": image.file_name,
        "caption": image.caption,
        "display_order": image.display_order,
        "is_primary": image.is_primary,
    }

def public_info(session: Session, project: Project) -> dict:
    category = session.get(Category, project.category_id)
    return project.public_info(category, list(project_images(session, project.id)))

def project_detail(session: Session, project: Project) -> dict:
    category = session.get(Category, project.category_id)
    developer = session.get(User, project.developer_id)
    data = project.model_dump()
    data["category"] = category.model_dump() if category else None
    data["images"] = [_serialize_image(img) for img in project_images(session, project.id)]
    data["developer"] = (
        {"id": developer.id, "name": developer.full_name, "company_name": developer.company_name}
        if developer
        else None
    )
    return data

def _owned_project(session: Session, project_id: int, developer: User) -> Project:
    project = session.get(Project, project_id)
    if not project or project.developer_id != developer.id:
        raise HTTPException(404, "project not found")
    return project

def _check_category(session: Session, category_id: int):
    if not session.get(Category, category_id):
        raise APIError(400, "INVALID_CATEGORY", "category not found")

@router.get("")
def list_projects(
    category: Optional[int] = None,
    search: Optional[str] = None,
    session: Session = Depends(get_session),
):
    stmt = select(Project).where(Project.status == ProjectStatus.APPROVED)
    if category:
        stmt = stmt.where(Project.category_id == category)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Project.title.ilike(pattern), Project.tagline.ilike(pattern)))
    projects = session.exec(stmt.order_by(Project.created_at.desc(), Project.id.desc())).all()
    items = [public_info(session, p) for p in projects]
    return {"projects": items, "total": len(items)}

@router.get("/{project_id}")
def get_project(
    project_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(resolve_current_user),
):
    project = session.get(Project, project_id)
    if not project:
        raise HTTPException(404, "project not found")

    if user.role == UserRole.ADMIN or (user.role == UserRole.DEVELOPER and project.developer_id == user.id):
        return {"project": project_detail(session, project), "full_access": True}

    if project.status != ProjectStatus.APPROVED:
        raise HTTPException(404, "project not found")

    if user.role != UserRole.INVESTOR:
        return {"project": public_info(session, project), "full_access": False}

    teaser = public_info(session, project)
    try:
        access = unlock_project(session, user, project)
    except APIError as e:
        e.extra = {**e.extra, "project": teaser, "full_access": False}
        raise
    return {"project": project_detail(session, project), "full_access": True, **access}

@router.post("", status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    session: Session = Depends(get_session),
    developer: User = Depends(require_developer),
):
    _check_category(session, payload.category_id)
    project = Project(developer_id=developer.id, status=ProjectStatus.DRAFT, **payload.model_dump())
    session.add(project)
    session.commit()
    session.refresh(project)
    logger.info("project %s created by developer %s", project.id, developer.id)
    return {"message": "Project created successfully", "project": project}

@router.put("/{project_id}")
def update_project(
    project_id: int,
    payload: ProjectCreate,
    session: Session = Depends(get_session),
    developer: User = Depends(require_developer),
):
    project = _owned_project(session, project_id, developer)
    if project.status not in ProjectStatus.EDITABLE:
        raise APIError(403, "PROJECT_NOT_EDITABLE", "Cannot edit approved or pending projects")
    _check_category(session, payload.category_id)
    for field, value in payload.model_dump().items():
        setattr(project, field, value)
    project.updated_at = utcnow()
    session.add(project)
    session.commit()
    session.refresh(project)
    return {"message": "Project updated successfully", "project": project}

@router.post("/{project_id}/submit")
def submit_project(
    project_id: int,
    session: Session = Depends(get_session),
    developer: User = Depends(require_developer),
):
    project = _owned_project(session, project_id, developer)
    if project.status not in ProjectStatus.EDITABLE:
        raise APIError(409, "INVALID_STATUS", f"project is {project.status} and cannot be submitted")
    project.status = ProjectStatus.PENDING
    project.rejection_reason = None
    project.updated_at = utcnow()
    session.add(project)
    session.commit()
    session.refresh(project)
    logger.info("project %s submitted for review", project.id)
    return {"message": "Project submitted for review", "project": project}

@router.post("/{project_id}/images", status_code=status.HTTP_201_CREATED)
async def upload_image(
    project_id: int,
    image: UploadFile = File(...),
    caption: str = Form(""),
    is_primary: str = Form("false"),
    session: Session = Depends(get_session),
    developer: User = Depends(require_developer),
):
    project = _owned_project(session, project_id, developer)
    data = await image.read()
    key = project_image_key(project.id, image.filename, len(data))

    existing = session.exec(
        select(func.count()).select_from(ProjectImage).where(ProjectImage.project_id == project.id)
    ).one()
    primary = existing == 0 or is_primary.strip().lower() == "true"
    if primary and existing:
        for other in project_images(session, project.id):
            if other.is_primary:
                other.is_primary = False
                session.add(other)

    put_bytes(key, data, content_type=image.content_type or "application/octet-stream")
    record = ProjectImage(
        project_id=project.id,
        s3_key=key,
        file_name=image.filename or "",
        caption=caption,
        display_order=existing,
        is_primary=primary,
    )
    session.add(record)
    session.commit()
    session.refresh(record)
    return {"message": "Image uploaded successfully", "image": _serialize_image(record)}

@router.delete("/{project_id}/images/{image_id}")
def delete_image(
    project_id: int,
    image_id: int,
    session: Session = Depends(get_session),
    developer: User = Depends(require_developer),
):
    _owned_project(session, project_id, developer)
    record = session.get(ProjectImage, image_id)
    if not record or record.project_id != project_id:
        raise HTTPException(404, "image not found")
    was_primary, key = record.is_primary, record.s3_key
    session.delete(record)
    session.commit()
    delete_object(key)
    if was_primary:
        remaining = project_images(session, project_id)
        if remaining:
            remaining[0].is_primary = True
            session.add(remaining[0])
            session.commit()
    return {"message": "Image deleted successfully"}
