import logging
import mimetypes

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from minio.error import S3Error

from .config import APP_NAME, CORS_ORIGINS, LOG_LEVEL
from .db import init_db
from .errors import register_error_handlers
from .logs import configure_logging
from .routers import admin, auth, categories, developer, nda, offers, payments, projects, termsheets
from .storage import get_bytes, is_public_key

configure_logging(LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title=f"{APP_NAME} API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("%s API started", APP_NAME)

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(categories.router, prefix="/api/categories", tags=["categories"])
app.include_router(projects.router, prefix="/api/projects", tags=["projects"])
app.include_router(developer.router, prefix="/api/developer", tags=["developer"])
app.include_router(nda.router, prefix="/api/nda", tags=["nda"])
app.include_router(payments.router, prefix="/api/payments", tags=["payments"])
app.include_router(offers.router, prefix="/api/offers", tags=["offers"])
app.include_router(termsheets.router, prefix="/api/termsheets", tags=["termsheets"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])

@app.get("/uploads/{key:path}")
def serve_upload(key: str):
    if not is_public_key(key):
        raise HTTPException(404, "file not found")
    try:
        data = get_bytes(key)
    except S3Error:
        raise HTTPException(404, "file not found")
    media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)

@app.get("/")
def root():
    return {"ok": True, "service": "angel-marketplace-api"}
