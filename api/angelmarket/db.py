import logging
from sqlmodel import SQLModel, create_engine, Session, select
from .config import DATABASE_URL, ADMIN_EMAIL, ADMIN_PASSWORD

logger = logging.getLogger(__name__)

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True, connect_args=_connect_args)

DEFAULT_CATEGORIES = [
    ("FinTech", "Financial technology and banking innovations", "💰"),
    ("HealthTech", "Healthcare and medical technology", "🏥"),
    ("EdTech", "Education technology and e-learning", "📚"),
    ("AgriTech", "Agricultural technology and farming innovations", "🌾"),
    ("CleanTech", "Environmental and sustainability solutions", "🌱"),
    ("PropTech", "Real estate and property technology", "🏠"),
    ("E-Commerce", "Online retail and marketplace solutions", "🛒"),
    ("SaaS", "Software as a Service platforms", "☁️"),
    ("AI/ML", "Artificial intelligence and machine learning", "🤖"),
    ("IoT", "Internet of Things and connected devices", "📡"),
    ("Cybersecurity", "Security and data protection", "🔒"),
    ("Logistics", "Supply chain and delivery solutions", "🚚"),
]

def init_db():
    from . import models  # noqa: F401  registers the tables
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        seed_categories(session)
        seed_admin_user(session)

def get_session():
    with Session(engine) as session:
        yield session

def seed_categories(session: Session) -> int:
    from .models import Category
    if session.exec(select(Category)).first():
        return 0
    for name, description, icon in DEFAULT_CATEGORIES:
        session.add(Category(name=name, description=description, icon=icon))
    session.commit()
    logger.info("seeded %d categories", len(DEFAULT_CATEGORIES))
    return len(DEFAULT_CATEGORIES)

def seed_admin_user(session: Session):
    from .models import User, UserRole
    from .auth import hash_password
    email = ADMIN_EMAIL.strip().lower()
    existing = session.exec(select(User).where(User.email == email)).first()
    if existing:
        return existing
    admin = User(
        email=email,
        password_hash=hash_password(ADMIN_PASSWORD),
        role=UserRole.ADMIN,
        first_name="Admin",
        last_name="User",
        email_verified=True,
    )
    session.add(admin)
    session.commit()
    session.refresh(admin)
    logger.info("admin user ready (email: %s)", email)
    return admin
