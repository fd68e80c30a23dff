import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .auth import PasswordHasher
from .errors import Conflict, InvalidQuantity, NotFound, OutOfStock, Unauthenticated, ValidationError
from .utils import normalize_email

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
TOO_MUCH_STOCK = "stock would exceed the maximum of %d units" % models.MAX_STOCK

# Business rule: price stored rounded to 2 decimals, non-negative

def round_price(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# -------------------- Credential store --------------------

def create_account(db: Session, email: str, password_hash: str, role: models.Role = models.Role.CUSTOMER) -> models.Account:
    account = models.Account(email=normalize_email(email), password_hash=password_hash, role=models.Role(role))
    db.add(account)
    try:
        db.commit()
    except IntegrityError as e:
        # The unique index decides between concurrent registrations
        db.rollback()
        raise Conflict("email already registered") from e
    db.refresh(account)
    return account


def get_account(db: Session, account_id: str) -> Optional[models.Account]:
    return db.get(models.Account, account_id)


def get_account_by_email(db: Session, email: str) -> Optional[models.Account]:
    return db.execute(
        select(models.Account).where(models.Account.email == normalize_email(email))
    ).scalar_one_or_none()


def register_account(db: Session, hasher: PasswordHasher, payload: schemas.RegisterRequest) -> models.Account:
    if get_account_by_email(db, payload.email) is not None:
        raise Conflict("email already registered")
    account = create_account(db, payload.email, hasher.hash(payload.password), payload.role)
    logger.info("registered account %s (%s)", account.id, account.role.value)
    return account


def authenticate(db: Session, hasher: PasswordHasher, email: str, password: str) -> models.Account:
    """Return the account for a correct email/password pair.

    Unknown email and wrong password raise the same error. A throwaway
    verification runs for unknown emails so the response time does not
    reveal which accounts exist.
    """
    account = get_account_by_email(db, email)
    if account is None:
        hasher.dummy_verify(password)
        logger.info("login failed: unknown email")
        raise Unauthenticated(INVALID_CREDENTIALS)
    if not hasher.verify(password, account.password_hash):
        logger.info("login failed for account %s: bad password", account.id)
        raise Unauthenticated(INVALID_CREDENTIALS)
    return account


# -------------------- Inventory store --------------------

def get_sweet(db: Session, sweet_id: str) -> models.Sweet:
    sweet = db.get(models.Sweet, sweet_id)
    if sweet is None:
        raise NotFound("sweet not found")
    return sweet


def list_sweets(db: Session) -> List[models.Sweet]:
    return list(db.execute(select(models.Sweet).order_by(models.Sweet.created_at, models.Sweet.id)).scalars())


def _like_pattern(term: str) -> str:
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_sweets(
    db: Session,
    name: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
) -> List[models.Sweet]:
    if min_price is not None and max_price is not None and min_price > max_price:
        raise ValidationError("minPrice must not exceed maxPrice")

    stmt = select(models.Sweet)
    # Parameterized, case-insensitive substring match
    if name:
        stmt = stmt.where(func.lower(models.Sweet.name).like(_like_pattern(name), escape="\\"))
    if category:
        stmt = stmt.where(func.lower(models.Sweet.category).like(_like_pattern(category), escape="\\"))
    if min_price is not None:
        stmt = stmt.where(models.Sweet.price >= min_price)
    if max_price is not None:
        stmt = stmt.where(models.Sweet.price <= max_price)
    return list(db.execute(stmt.order_by(models.Sweet.created_at, models.Sweet.id)).scalars())


def create_sweet(db: Session, payload: schemas.SweetCreate) -> models.Sweet:
    sweet = models.Sweet(
        name=payload.name,
        price=round_price(payload.price),
        category=payload.category,
        description=payload.description,
        image_url=payload.image_url,
        stock=payload.stock,
    )
    db.add(sweet)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValidationError("sweet violates catalog constraints") from e
    db.refresh(sweet)
    logger.info("created sweet %s (%r, stock=%d)", sweet.id, sweet.name, sweet.stock)
    return sweet


def update_sweet(db: Session, sweet_id: str, payload: schemas.SweetUpdate) -> models.Sweet:
    sweet = get_sweet(db, sweet_id)
    changes = payload.changes()
    if "price" in changes:
        changes["price"] = round_price(changes["price"])
    for field, value in changes.items():
        setattr(sweet, field, value)
    db.add(sweet)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValidationError("sweet violates catalog constraints") from e
    db.refresh(sweet)
    logger.info("updated sweet %s fields=%s", sweet.id, sorted(changes))
    return sweet


def delete_sweet(db: Session, sweet_id: str) -> None:
    sweet = get_sweet(db, sweet_id)
    db.delete(sweet)
    db.commit()
    logger.info("deleted sweet %s", sweet_id)


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity()
    return quantity


def purchase_sweet(db: Session, sweet_id: str, quantity: int = 1) -> models.Sweet:
    """Remove ``quantity`` units from stock, or nothing at all.

    The stock check and the decrement are one conditional UPDATE, so two
    concurrent purchases can never both pass the check against the same
    stock value. When no row is updated the sweet is looked up only to
    choose between NotFound and OutOfStock.
    """
    quantity = _check_quantity(quantity)
    if quantity > models.MAX_STOCK:
        # No stored stock can cover it, and the driver cannot bind it
        sweet = get_sweet(db, sweet_id)
        logger.info("purchase of %d x %s rejected: stock %d", quantity, sweet_id, sweet.stock)
        raise OutOfStock(f"insufficient stock: {sweet.stock} available")
    result = db.execute(
        update(models.Sweet)
        .where(models.Sweet.id == sweet_id, models.Sweet.stock >= quantity)
        .values(stock=models.Sweet.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        sweet = get_sweet(db, sweet_id)
        logger.info("purchase of %d x %s rejected: stock %d", quantity, sweet_id, sweet.stock)
        raise OutOfStock(f"insufficient stock: {sweet.stock} available")

    # Read back inside the transaction so the caller sees the stock this
    # purchase produced, not a later one
    sweet = get_sweet(db, sweet_id)
    db.refresh(sweet)
    db.commit()
    logger.info("purchased %d x %s, stock now %d", quantity, sweet_id, sweet.stock)
    return sweet


def restock_sweet(db: Session, sweet_id: str, quantity: int) -> models.Sweet:
    quantity = _check_quantity(quantity)
    if quantity > models.MAX_STOCK:
        raise ValidationError(TOO_MUCH_STOCK)
    result = db.execute(
        update(models.Sweet)
        .where(models.Sweet.id == sweet_id, models.Sweet.stock <= models.MAX_STOCK - quantity)
        .values(stock=models.Sweet.stock + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        get_sweet(db, sweet_id)
        raise ValidationError(TOO_MUCH_STOCK)

    sweet = get_sweet(db, sweet_id)
    db.refresh(sweet)
    db.commit()
    logger.info("restocked %d x %s, stock now %d", quantity, sweet_id, sweet.stock)
    return sweet
