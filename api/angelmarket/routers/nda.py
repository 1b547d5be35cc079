import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlmodel import Session

from ..auth import require_investor
from ..config import NDA_TERM_YEARS, NDA_VERSION
from ..db import get_session
from ..documents import NDA_TEMPLATE, NDA_TEMPLATE_HASH, render_nda_pdf
from ..errors import APIError, document_generation_failed
from ..gates import latest_nda
from ..models import NDA, User
from ..schemas import NDASign
from ..storage import nda_document_key, put_bytes
from ..utils import add_years, client_ip, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/template")
def get_template(investor: User = Depends(require_investor)):
    return {"template": NDA_TEMPLATE, "version": NDA_VERSION, "document_hash": NDA_TEMPLATE_HASH}

@router.get("/status")
def get_status(
    session: Session = Depends(get_session),
    investor: User = Depends(require_investor),
):
    nda = latest_nda(session, investor.id)
    if not nda:
        return {"signed": False, "valid": False, "message": "NDA not signed"}
    return {
        "signed": True,
        "valid": nda.is_valid(),
        "signed_at": nda.signed_at,
        "expires_at": nda.expires_at,
        "version": nda.version,
    }

@router.post("/sign", status_code=status.HTTP_201_CREATED)
def sign(
    payload: NDASign,
    request: Request,
    session: Session = Depends(get_session),
    investor: User = Depends(require_investor),
):
    if not payload.agreed:
        raise APIError(400, "NDA_NOT_AGREED", "You must agree to the NDA terms")
    existing = latest_nda(session, investor.id)
    if existing and existing.is_valid():
        raise APIError(409, "NDA_ALREADY_SIGNED", "You have already signed a valid NDA")

    now = utcnow()
    nda = NDA(
        investor_id=investor.id,
        signature_data=payload.signature_data,
        signed_name=payload.signed_name.strip(),
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
        signed_at=now,
        expires_at=add_years(now, NDA_TERM_YEARS),
        version=NDA_VERSION,
        document_hash=NDA_TEMPLATE_HASH,
        created_at=now,
    )
    session.add(nda)
    session.commit()
    session.refresh(nda)
    logger.info("investor %s signed NDA %s", investor.id, nda.id)

    # the agreement stands even if the archived copy cannot be produced
    try:
        key = nda_document_key(nda.id)
        put_bytes(key, render_nda_pdf(nda, investor), content_type="application/pdf")
    except Exception:
        logger.exception("failed to archive PDF for NDA %s", nda.id)
    else:
        nda.document_key = key
        session.add(nda)
        session.commit()
        session.refresh(nda)

    return {
        "message": "NDA signed successfully",
        "signed_at": nda.signed_at,
        "expires_at": nda.expires_at,
        "version": nda.version,
        "has_document": bool(nda.document_key),
    }

@router.get("/download")
def download(
    session: Session = Depends(get_session),
    investor: User = Depends(require_investor),
):
    nda = latest_nda(session, investor.id)
    if not nda:
        raise HTTPException(404, "No signed NDA found")
    try:
        pdf_bytes = render_nda_pdf(nda, investor)
    except Exception:
        logger.exception("failed to render NDA %s", nda.id)
        raise document_generation_failed("NDA document")
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="nda-{nda.id}.pdf"'},
    )
