import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .auth import PasswordHasher, TokenService
from .config import Settings, load_settings
from .db import init_db, make_engine, make_sessionmaker
from .deps import get_current_account, get_db, get_hasher, get_token_service, require_admin
from .errors import ShopError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _parse_price(value: Optional[str], name: str) -> Optional[Decimal]:
    # Empty query values (?minPrice=) mean "no bound"
    if value is None or not value.strip():
        return None
    try:
        price = Decimal(value.strip())
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number")
    if not price.is_finite() or price < 0:
        raise ValidationError(f"{name} must be a non-negative number")
    return price


# -------------------- Auth --------------------

@router.post("/auth/register", response_model=schemas.AccountRead, status_code=201)
def register(
    payload: schemas.RegisterRequest,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
):
    return crud.register_account(db, hasher, payload)


@router.post("/auth/login", response_model=schemas.TokenResponse)
def login(
    payload: schemas.LoginRequest,
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_hasher),
    tokens: TokenService = Depends(get_token_service),
):
    account = crud.authenticate(db, hasher, payload.email, payload.password)
    token = tokens.issue(account.id, account.role)
    logger.info("account %s logged in", account.id)
    return schemas.TokenResponse(token=token, account=schemas.AccountRead.model_validate(account))


@router.get("/auth/me", response_model=schemas.AccountRead)
def me(account: models.Account = Depends(get_current_account)):
    return account


# -------------------- Sweets --------------------

@router.get("/sweets", response_model=List[schemas.SweetRead])
def list_sweets(db: Session = Depends(get_db), account: models.Account = Depends(get_current_account)):
    return crud.list_sweets(db)


@router.get("/sweets/search", response_model=List[schemas.SweetRead])
def search_sweets(
    name: Optional[str] = Query(None, max_length=200),
    category: Optional[str] = Query(None, max_length=100),
    min_price: Optional[str] = Query(None, alias="minPrice"),
    max_price: Optional[str] = Query(None, alias="maxPrice"),
    db: Session = Depends(get_db),
    account: models.Account = Depends(get_current_account),
):
    return crud.search_sweets(
        db,
        name=(name or "").strip() or None,
        category=(category or "").strip() or None,
        min_price=_parse_price(min_price, "minPrice"),
        max_price=_parse_price(max_price, "maxPrice"),
    )


@router.get("/sweets/{sweet_id}", response_model=schemas.SweetRead)
def get_sweet(sweet_id: str, db: Session = Depends(get_db), account: models.Account = Depends(get_current_account)):
    return crud.get_sweet(db, sweet_id)


@router.post("/sweets", response_model=schemas.SweetRead, status_code=201)
def create_sweet(
    payload: schemas.SweetCreate,
    db: Session = Depends(get_db),
    admin: models.Account = Depends(require_admin),
):
    return crud.create_sweet(db, payload)


@router.put("/sweets/{sweet_id}", response_model=schemas.SweetRead)
def update_sweet(
    sweet_id: str,
    payload: schemas.SweetUpdate,
    db: Session = Depends(get_db),
    admin: models.Account = Depends(require_admin),
):
    return crud.update_sweet(db, sweet_id, payload)


@router.delete("/sweets/{sweet_id}")
def delete_sweet(sweet_id: str, db: Session = Depends(get_db), admin: models.Account = Depends(require_admin)):
    crud.delete_sweet(db, sweet_id)
    return {"deleted": sweet_id}


@router.post("/sweets/{sweet_id}/purchase", response_model=schemas.SweetRead)
def purchase_sweet(
    sweet_id: str,
    payload: Optional[schemas.PurchaseRequest] = None,
    db: Session = Depends(get_db),
    account: models.Account = Depends(get_current_account),
):
    quantity = payload.quantity if payload is not None else 1
    return crud.purchase_sweet(db, sweet_id, quantity)


@router.post("/sweets/{sweet_id}/restock", response_model=schemas.SweetRead)
def restock_sweet(
    sweet_id: str,
    payload: schemas.RestockRequest,
    db: Session = Depends(get_db),
    admin: models.Account = Depends(require_admin),
):
    return crud.restock_sweet(db, sweet_id, payload.quantity)


# -------------------- Error handling --------------------

async def handle_shop_error(request: Request, exc: ShopError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


async def handle_validation_error(request: Request, exc: RequestValidationError):
    reasons = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        reasons.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg"))
    return JSONResponse(status_code=400, content={"detail": "; ".join(reasons) or "invalid input"})


async def handle_store_error(request: Request, exc: SQLAlchemyError):
    # Full detail stays in the server log; clients get a generic message
    logger.exception("store failure on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "internal server error"})


def create_app(
    settings: Optional[Settings] = None,
    token_service: Optional[TokenService] = None,
    hasher: Optional[PasswordHasher] = None,
) -> FastAPI:
    """Build the API with its own engine, signing key and hasher.

    Run with ``uvicorn sweetshop.main:create_app --factory``.
    """
    settings = settings or load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    engine = make_engine(settings.database_url, timeout=settings.db_timeout_seconds)
    init_db(engine)

    app = FastAPI(title="Sweet Shop API")
    app.state.settings = settings
    app.state.engine = engine
    app.state.SessionLocal = make_sessionmaker(engine)
    app.state.hasher = hasher or PasswordHasher()
    app.state.token_service = token_service or TokenService(
        settings.jwt_secret,
        ttl_seconds=settings.jwt_expires_seconds,
        algorithm=settings.jwt_algorithm,
    )

    app.add_exception_handler(ShopError, handle_shop_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(SQLAlchemyError, handle_store_error)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(router)
    return app
