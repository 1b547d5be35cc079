from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    role: Literal["investor", "developer"]
    phone: str = ""
    company_name: str = ""

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class ForgotPasswordRequest(BaseModel):
    email: EmailStr

class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(min_length=8)

class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)

class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None
    bio: Optional[str] = None

class ProjectCreate(BaseModel):
    title: str = Field(min_length=1)
    tagline: str = Field(default="", max_length=200)
    category_id: int
    description: str = Field(min_length=1)
    pitch_content: str = ""
    problem: str = ""
    solution: str = ""
    target_market: str = ""
    business_model: str = ""
    traction: str = ""
    team: str = ""
    min_investment: float = Field(gt=0)
    max_investment: float = Field(default=0.0, ge=0)
    equity_offered: float = Field(default=0.0, ge=0, le=100)
    valuation_cap: float = Field(default=0.0, ge=0)

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    icon: str = ""

class NDASign(BaseModel):
    signature_data: str = Field(min_length=1)  # base64 signature image
    signed_name: str = Field(min_length=1)
    agreed: bool

class PaymentConfirm(BaseModel):
    payment_id: int
    gateway_payment_id: Optional[str] = None
    demo_mode: bool = False

class OfferCreate(BaseModel):
    project_id: int
    offer_amount: float = Field(gt=0)
    equity_request: float = Field(default=0.0, ge=0, le=100)
    terms_notes: str = ""

class OfferRespond(BaseModel):
    action: Literal["accept", "reject"]
    response_notes: str = ""
    valuation_cap: float = Field(default=0.0, ge=0)
    discount_rate: float = Field(default=0.0, ge=0, le=100)

class TermSheetSign(BaseModel):
    signature_data: str = Field(min_length=1)

class ProjectReview(BaseModel):
    approved: bool
    reason: str = ""
