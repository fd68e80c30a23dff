import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, Integer, Numeric, String, Text

from .db import Base

# Stock is stored as a signed 64-bit INTEGER
MAX_STOCK = 2**63 - 1


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(32), primary_key=True, default=_new_id)
    # Stored normalized (stripped, lower-cased); the unique index is the
    # serialization point for concurrent registrations
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(
        Enum(Role, name="role", native_enum=False, length=16, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=Role.CUSTOMER,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<Account {self.id} {self.email} role={self.role.value if self.role else None}>"


class Sweet(Base):
    __tablename__ = "sweets"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_sweets_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_sweets_price_non_negative"),
    )

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(100), nullable=True, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<Sweet {self.id} {self.name!r} stock={self.stock}>"
