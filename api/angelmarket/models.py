from typing import Optional, List
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, Index, Text, UniqueConstraint, text
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel, Field as ORMField

from .utils import utcnow, format_amount


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps, also on backends that store them naive."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class UserRole:
    INVESTOR = "investor"
    DEVELOPER = "developer"
    ADMIN = "admin"


class ProjectStatus:
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    EDITABLE = (DRAFT, REJECTED)


class PaymentStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class OfferStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    EXPIRED = "expired"


class TermSheetStatus:
    DRAFT = "draft"
    INVESTOR_SIGNED = "investor_signed"
    COMPLETED = "completed"
    VOIDED = "voided"


class User(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    email: str = ORMField(index=True, unique=True)
    password_hash: str
    role: str = ORMField(index=True)
    first_name: str
    last_name: str
    phone: str = ""
    company_name: str = ""
    bio: str = ORMField(default="", sa_column=Column(Text, default=""))
    email_verified: bool = False
    verify_token: Optional[str] = ORMField(default=None, index=True)
    reset_token: Optional[str] = ORMField(default=None, index=True)
    reset_expires: Optional[datetime] = ORMField(default=None, sa_type=UTCDateTime)
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_response(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "company_name": self.company_name,
            "bio": self.bio,
            "email_verified": self.email_verified,
            "created_at": self.created_at,
        }


class Category(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    name: str = ORMField(unique=True)
    description: str = ""
    icon: str = ""
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)


class Project(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    developer_id: int = ORMField(index=True)
    category_id: int = ORMField(index=True)
    title: str
    tagline: str = ""
    description: str = ORMField(sa_column=Column(Text, nullable=False))
    pitch_content: str = ORMField(default="", sa_column=Column(Text, default=""))
    problem: str = ORMField(default="", sa_column=Column(Text, default=""))
    solution: str = ORMField(default="", sa_column=Column(Text, default=""))
    target_market: str = ORMField(default="", sa_column=Column(Text, default=""))
    business_model: str = ORMField(default="", sa_column=Column(Text, default=""))
    traction: str = ORMField(default="", sa_column=Column(Text, default=""))
    team: str = ORMField(default="", sa_column=Column(Text, default=""))
    min_investment: float
    max_investment: float = 0.0
    equity_offered: float = 0.0  # percent
    valuation_cap: float = 0.0
    status: str = ORMField(default=ProjectStatus.DRAFT, index=True)
    rejection_reason: Optional[str] = None
    approved_at: Optional[datetime] = ORMField(default=None, sa_type=UTCDateTime)
    approved_by: Optional[int] = None
    view_count: int = 0
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)

    def public_info(self, category: Optional[Category] = None, images: Optional[List["ProjectImage"]] = None) -> dict:
        """Teaser shown before an investor unlocks the project."""
        images = images or []
        primary = next((img for img in images if img.is_primary), images[0] if images else None)
        return {
            "id": self.id,
            "title": self.title,
            "tagline": self.tagline,
            "category_id": self.category_id,
            "category": category.model_dump() if category else None,
            "min_investment": self.min_investment,
            "primary_image": primary.url if primary else None,
            "created_at": self.created_at,
        }


class ProjectImage(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    project_id: int = ORMField(index=True)
    s3_key: str
    file_name: str = ""
    caption: str = ""
    display_order: int = 0
    is_primary: bool = False
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def url(self) -> str:
        return f"/uploads/{self.s3_key}"


class NDA(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    investor_id: int = ORMField(index=True)
    signature_data: str = ORMField(sa_column=Column(Text, nullable=False))  # base64 image
    signed_name: str
    ip_address: str = ""
    user_agent: str = ""
    signed_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: Optional[datetime] = ORMField(default=None, sa_type=UTCDateTime)
    version: str = "1.0"
    document_hash: str = ""
    document_key: Optional[str] = None
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return True
        return (now or utcnow()) < self.expires_at


class Payment(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    investor_id: int = ORMField(index=True)
    amount: int  # minor units
    currency: str = "usd"
    gateway_payment_id: Optional[str] = ORMField(default=None, index=True)
    status: str = ORMField(default=PaymentStatus.PENDING, index=True)
    projects_remaining: int
    projects_total: int
    description: str = ""
    receipt_url: Optional[str] = None
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)
    completed_at: Optional[datetime] = ORMField(default=None, sa_type=UTCDateTime)

    def to_response(self) -> dict:
        return {
            "id": self.id,
            "amount": self.amount,
            "amount_formatted": format_amount(self.amount, self.currency),
            "currency": self.currency,
            "status": self.status,
            "projects_remaining": self.projects_remaining,
            "projects_total": self.projects_total,
            "receipt_url": self.receipt_url,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
        }


class ProjectView(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("investor_id", "project_id", name="uq_projectview_investor_project"),)

    id: Optional[int] = ORMField(default=None, primary_key=True)
    investor_id: int = ORMField(index=True)
    project_id: int = ORMField(index=True)
    payment_id: int = ORMField(index=True)
    viewed_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)


class InvestmentOffer(SQLModel, table=True):
    # at most one open offer per investor and project
    __table_args__ = (
        Index(
            "uq_offer_pending_investor_project",
            "investor_id",
            "project_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id: Optional[int] = ORMField(default=None, primary_key=True)
    investor_id: int = ORMField(index=True)
    project_id: int = ORMField(index=True)
    offer_amount: float
    equity_request: float = 0.0  # percent
    terms_notes: str = ORMField(default="", sa_column=Column(Text, default=""))
    status: str = ORMField(default=OfferStatus.PENDING, index=True)
    response_notes: str = ORMField(default="", sa_column=Column(Text, default=""))
    expires_at: Optional[datetime] = ORMField(default=None, sa_type=UTCDateTime)
    responded_at: Optional[datetime] = ORMField(default=None, sa_type=UTCDateTime)
    created_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    def can_respond(self, now: Optional[datetime] = None) -> bool:
        return self.status == OfferStatus.PENDING and not self.is_expired(now)


class TermSheet(SQLModel, table=True):
    id: Optional[int] = ORMField(default=None, primary_key=True)
    offer_id: int = ORMField(index=True, unique=True)
    document_key: Optional[str] = None
    sha256_final: Optional[str] = None
    investor_signature: Optional[str] = ORMField(default=None, sa_column=Column(Text))
    developer_signature: Optional[str] = ORMField(default=None, sa_column=Column(Text))
    investor_signed_at: Optional[datetime] = ORMField(default=None, sa_type=UTCDateTime)
    developer_signed_at: Optional[datetime] = ORMField(default=None, sa_type=UTCDateTime)
    investor_ip: Optional[str] = None
    developer_ip: Optional[str] = None
    status: str = ORMField(default=TermSheetStatus.DRAFT, index=True)

    # SAFE terms
    investment_amount: float
    valuation_cap: float = 0.0
    discount_rate: float = 0.0  # percent
    pro_rata_rights: bool = True
    mfn_clause: bool = False

    created_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = ORMField(default_factory=utcnow, sa_type=UTCDateTime)

    def is_fully_signed(self) -> bool:
        return bool(self.investor_signature) and bool(self.developer_signature)

    def to_response(self) -> dict:
        # signature blobs stay server-side; callers only need to know who signed
        return {
            "id": self.id,
            "offer_id": self.offer_id,
            "status": self.status,
            "investment_amount": self.investment_amount,
            "valuation_cap": self.valuation_cap,
            "discount_rate": self.discount_rate,
            "pro_rata_rights": self.pro_rata_rights,
            "mfn_clause": self.mfn_clause,
            "investor_signed": bool(self.investor_signature),
            "developer_signed": bool(self.developer_signature),
            "investor_signed_at": self.investor_signed_at,
            "developer_signed_at": self.developer_signed_at,
            "sha256_final": self.sha256_final,
            "has_document": bool(self.document_key),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
