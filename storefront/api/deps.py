# storefront/api/deps.py
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from storefront.domain.errors import AuthError
from storefront.services.lock_service import EventClaimService
from storefront.services.notification_service import NotificationService
from storefront.services.payment_gateway import PaymentGateway, get_gateway
from storefront.services.product_client import ProductClient
from storefront.utils.settings import JWT_ALGORITHM, JWT_SECRET_KEY

bearer_scheme = HTTPBearer(auto_error=False)


def decode_user_id(token: str) -> int:
    """User id from a bearer token issued by the auth service (``sub`` claim)."""
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise AuthError("Could not validate credentials")


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> int:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_user_id(credentials.credentials)
    except AuthError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


# collaborators, overridden in tests

def get_catalog():
    return ProductClient()


def get_notifier():
    return NotificationService()


def get_payment_gateway() -> PaymentGateway:
    return get_gateway()


def get_event_claims():
    return EventClaimService()
