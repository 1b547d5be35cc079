import io
import os
import uuid
from minio import Minio
from .config import MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY, MINIO_BUCKET, MAX_IMAGE_SIZE
from .errors import APIError

_client = Minio(
    MINIO_ENDPOINT,
    access_key=MINIO_ACCESS_KEY,
    secret_key=MINIO_SECRET_KEY,
    secure=False
)

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
PUBLIC_PREFIXES = ("projects/",)

def ensure_bucket():
    if not _client.bucket_exists(MINIO_BUCKET):
        _client.make_bucket(MINIO_BUCKET)

def put_bytes(key: str, data: bytes, content_type: str = "application/octet-stream"):
    ensure_bucket()
    _client.put_object(MINIO_BUCKET, key, io.BytesIO(data), length=len(data), content_type=content_type)

def get_bytes(key: str) -> bytes:
    resp = _client.get_object(MINIO_BUCKET, key)
    try:
        return resp.read()
    finally:
        resp.close()
        resp.release_conn()

def delete_object(key: str):
    _client.remove_object(MINIO_BUCKET, key)

def is_public_key(key: str) -> bool:
    return key.startswith(PUBLIC_PREFIXES) and ".." not in key

def project_image_key(project_id: int, filename: str, size: int) -> str:
    """Validate an upload and return the key it should be stored under."""
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        raise APIError(400, "INVALID_FILE_TYPE", f"invalid file type: {ext or 'none'}. Allowed: jpg, jpeg, png, gif, webp")
    if size > MAX_IMAGE_SIZE:
        raise APIError(413, "FILE_TOO_LARGE", f"file too large. Maximum size is {MAX_IMAGE_SIZE // (1024 * 1024)}MB")
    return f"projects/{project_id}/images/{uuid.uuid4().hex[:12]}{ext}"

def nda_document_key(nda_id: int) -> str:
    return f"documents/ndas/nda-{nda_id}.pdf"

def term_sheet_document_key(term_sheet_id: int) -> str:
    return f"documents/termsheets/safe-{term_sheet_id}.pdf"
