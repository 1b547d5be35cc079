from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from ..db import get_session
from ..models import Category

router = APIRouter()

@router.get("")
def list_categories(session: Session = Depends(get_session)):
    return {"categories": session.exec(select(Category).order_by(Category.name)).all()}
