"""Request-scoped dependencies: DB session, authentication and role checks."""
import logging
from typing import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from . import crud, models
from .auth import PasswordHasher, TokenService
from .errors import Forbidden, TokenError, Unauthenticated

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_hasher(request: Request) -> PasswordHasher:
    return request.app.state.hasher


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def extract_bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise Unauthenticated()
    parts = authorization.split(None, 1)
    if len(parts) != 2 or parts[0].lower() != BEARER_SCHEME or not parts[1].strip():
        raise Unauthenticated()
    return parts[1].strip()


def get_current_account(
    request: Request,
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
) -> models.Account:
    token = extract_bearer_token(request.headers.get("authorization"))
    try:
        claims = tokens.verify(token)
    except TokenError as e:
        logger.info("rejected token on %s %s: %s", request.method, request.url.path, e.reason)
        raise Unauthenticated() from e

    account = crud.get_account(db, claims.account_id)
    if account is None:
        # A valid signature for an account that no longer exists is still rejected
        logger.info("rejected token on %s %s: account %s no longer exists", request.method, request.url.path, claims.account_id)
        raise Unauthenticated()

    request.state.account = account
    return account


def require_role(account: models.Account, role: models.Role) -> None:
    if models.Role(account.role) is not models.Role(role):
        raise Forbidden()


def require_admin(
    request: Request,
    account: models.Account = Depends(get_current_account),
) -> models.Account:
    try:
        require_role(account, models.Role.ADMIN)
    except Forbidden:
        logger.warning("account %s (%s) denied admin route %s %s", account.id, account.role.value, request.method, request.url.path)
        raise
    return account
