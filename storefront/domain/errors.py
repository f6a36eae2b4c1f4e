# storefront/domain/errors.py
"""
Error taxonomy of the order subsystem.

Every error carries the HTTP status it is reported with, routers translate
them with ``HTTPException(status_code=e.status_code, detail=str(e))``.
"""


class ShopError(Exception):
    status_code = 500


class ValidationError(ShopError):
    status_code = 400


class InvalidPaymentMethodError(ValidationError):
    pass


class EmptyCartError(ValidationError):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class AuthError(ShopError):
    status_code = 401


class NotFoundError(ShopError):
    status_code = 404


class InvalidTransitionError(ShopError):
    status_code = 409


class ReferenceConflictError(ShopError):
    status_code = 409


class ConcurrencyConflictError(ShopError):
    status_code = 409


class GatewayError(ShopError):
    status_code = 502


class InvalidSignatureError(ShopError):
    status_code = 400
