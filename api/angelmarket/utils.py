import base64, hashlib, json, secrets
from datetime import datetime, timedelta, timezone
from itsdangerous import URLSafeTimedSerializer
from .config import SECRET_KEY

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def add_years(value: datetime, years: int) -> datetime:
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        # Feb 29 rolls forward to Mar 1
        return value.replace(year=value.year + years, day=28) + timedelta(days=1)

def b64png_to_bytes(data_url: str) -> bytes:
    # accepts "data:image/png;base64,....." or a bare base64 payload
    if "," in data_url:
        data_url = data_url.split(",", 1)[1]
    return base64.b64decode(data_url)

def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()

def canonical_json(obj) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))

def random_token() -> str:
    return secrets.token_hex(32)

def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(SECRET_KEY, salt="auth")

def make_token(payload: dict) -> str:
    return _serializer().dumps(payload)

def read_token(token: str, max_age: int) -> dict:
    return _serializer().loads(token, max_age=max_age)

CURRENCY_SYMBOLS = {"usd": "$", "zar": "R", "eur": "€", "gbp": "£"}

def format_amount(amount_minor: int, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get((currency or "").lower(), "$")
    return f"{symbol}{amount_minor / 100:,.2f}"

def client_ip(request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""
