from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, StrictInt, field_validator, model_validator
from pydantic.config import ConfigDict

from .models import MAX_STOCK, Role
from .utils import clean_text

# The original web client registers customers with role "user"
ROLE_ALIASES = {"user": Role.CUSTOMER}


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    role: Role = Role.CUSTOMER

    @field_validator("role", mode="before")
    @classmethod
    def map_role_alias(cls, v):
        if isinstance(v, str):
            return ROLE_ALIASES.get(v.strip().lower(), v.strip().lower())
        return v


class LoginRequest(BaseModel):
    # Plain str: a malformed email must fail like any other bad credential
    email: str
    password: str


class AccountRead(BaseModel):
    account_id: str = Field(validation_alias="id")
    email: str
    role: Role

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    account: AccountRead


def _clean_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = clean_text(v)
    if not v:
        raise ValueError("name must not be empty")
    return v


class SweetCreate(BaseModel):
    name: str = Field(..., max_length=200)
    price: Decimal = Field(..., ge=0, max_digits=12)
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    image_url: Optional[str] = Field(default=None, max_length=500, alias="imageUrl")
    stock: StrictInt = Field(default=0, ge=0, le=MAX_STOCK)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str):
        return _clean_name(v)

    @field_validator("category", "description", "image_url")
    @classmethod
    def strip_markup(cls, v: Optional[str]):
        return clean_text(v) or None


class SweetUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12)
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    image_url: Optional[str] = Field(default=None, max_length=500, alias="imageUrl")
    stock: Optional[StrictInt] = Field(default=None, ge=0, le=MAX_STOCK)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: Optional[str]):
        return _clean_name(v)

    @field_validator("category", "description", "image_url")
    @classmethod
    def strip_markup(cls, v: Optional[str]):
        return clean_text(v) or None

    @model_validator(mode="after")
    def required_fields_not_null(self):
        # Partial update: omitted fields are left alone, but the required
        # attributes cannot be cleared
        for field in ("name", "price", "stock"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(include=self.model_fields_set)


class SweetRead(BaseModel):
    id: str
    name: str
    price: float
    category: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    stock: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("price", mode="before")
    @classmethod
    def price_as_number(cls, v):
        return float(v) if isinstance(v, Decimal) else v


class PurchaseRequest(BaseModel):
    quantity: StrictInt = 1


class RestockRequest(BaseModel):
    quantity: StrictInt = Field(..., le=MAX_STOCK)
