from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response
from minio.error import S3Error
from sqlmodel import Session

from .. import offers as offer_service
from ..auth import resolve_current_user
from ..db import get_session
from ..email import notify, send_term_sheet_completed_notification
from ..models import User
from ..schemas import TermSheetSign
from ..utils import client_ip

router = APIRouter()

@router.get("")
def list_term_sheets(
    session: Session = Depends(get_session),
    user: User = Depends(resolve_current_user),
):
    return {"term_sheets": [ctx.to_response() for ctx in offer_service.list_term_sheets(session, user)]}

@router.get("/{term_sheet_id}")
def get_term_sheet(
    term_sheet_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(resolve_current_user),
):
    return {"term_sheet": offer_service.load_term_sheet(session, user, term_sheet_id).to_response()}

@router.post("/{term_sheet_id}/sign")
def sign_term_sheet(
    term_sheet_id: int,
    payload: TermSheetSign,
    request: Request,
    background: BackgroundTasks,
    session: Session = Depends(get_session),
    user: User = Depends(resolve_current_user),
):
    ctx, sealed = offer_service.sign_term_sheet(
        session, user, term_sheet_id, payload.signature_data, client_ip(request)
    )
    if sealed is not None:
        sha_final = ctx.term_sheet.sha256_final
        for party in (ctx.investor, ctx.developer):
            background.add_task(
                notify, send_term_sheet_completed_notification, party, ctx.project, sealed, sha_final
            )
    return {"message": "Term sheet signed successfully", "term_sheet": ctx.to_response()}

@router.get("/{term_sheet_id}/download")
def download_term_sheet(
    term_sheet_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(resolve_current_user),
):
    ctx = offer_service.load_term_sheet(session, user, term_sheet_id)
    try:
        pdf_bytes = offer_service.term_sheet_pdf(ctx)
    except S3Error:
        raise HTTPException(404, "stored file missing for this term sheet")
    suffix = "signed" if ctx.term_sheet.document_key else "draft"
    filename = f"safe-{ctx.term_sheet.id}-{suffix}.pdf"
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
