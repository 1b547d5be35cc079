import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./angelmarket.db")
SECRET_KEY = os.getenv("SECRET_KEY", "devsecret")
TOKEN_MAX_AGE_HOURS = int(os.getenv("TOKEN_MAX_AGE_HOURS", "72"))

MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "minio:9000")
MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "minioadmin")
MINIO_BUCKET = os.getenv("MINIO_BUCKET", "angelmarket")

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY", "")

# amounts are in minor units (cents)
VIEW_FEE_AMOUNT = int(os.getenv("VIEW_FEE_AMOUNT", "50000"))
VIEW_FEE_CURRENCY = os.getenv("VIEW_FEE_CURRENCY", "usd")
MAX_PROJECT_VIEWS = int(os.getenv("MAX_PROJECT_VIEWS", "4"))

NDA_VERSION = "1.0"
NDA_TERM_YEARS = int(os.getenv("NDA_TERM_YEARS", "2"))
OFFER_TTL_DAYS = int(os.getenv("OFFER_TTL_DAYS", "30"))
DEFAULT_DISCOUNT_RATE = float(os.getenv("DEFAULT_DISCOUNT_RATE", "20"))
RESET_TOKEN_TTL_HOURS = 24
MAX_IMAGE_SIZE = int(os.getenv("MAX_IMAGE_SIZE", str(5 * 1024 * 1024)))

APP_NAME = os.getenv("APP_NAME", "Angel Marketplace")
APP_URL = os.getenv("APP_URL", "http://localhost:3000")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin12345")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
