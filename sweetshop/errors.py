"""Error types raised by the credential and inventory layers.

Each error carries the HTTP status the API answers with and a ``detail``
that is safe to show to clients. Anything more specific (the reason a
token was rejected, the raw database error) goes to the server log only.
"""


class ShopError(Exception):
    status_code = 500
    default_detail = "internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(ShopError):
    status_code = 400
    default_detail = "invalid input"


class InvalidQuantity(ValidationError):
    default_detail = "quantity must be a positive integer"


class Unauthenticated(ShopError):
    status_code = 401
    default_detail = "not authenticated"


class Forbidden(ShopError):
    status_code = 403
    default_detail = "forbidden"


class NotFound(ShopError):
    status_code = 404
    default_detail = "not found"


class Conflict(ShopError):
    # The register contract answers duplicates with 400
    status_code = 400
    default_detail = "already exists"


class OutOfStock(ShopError):
    status_code = 400
    default_detail = "insufficient stock"


class InternalFailure(ShopError):
    status_code = 500
    default_detail = "internal server error"


class TokenError(Exception):
    """Base for token verification failures; never shown to clients."""

    reason = "invalid"


class TokenMalformed(TokenError):
    reason = "malformed"


class TokenBadSignature(TokenError):
    reason = "bad signature"


class TokenExpired(TokenError):
    reason = "expired"
