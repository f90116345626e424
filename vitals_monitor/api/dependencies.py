"""FastAPI dependencies: authentication collaborators and service providers."""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError, jwt

from vitals_monitor.core.errors import AuthDenied
from vitals_monitor.core.ingestion import IngestionGateway
from vitals_monitor.core.models import Principal
from vitals_monitor.core.queries import QueryService
from vitals_monitor.core.repositories import Storage
from vitals_monitor.settings import Settings

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def authenticate(authorization: Optional[str], settings: Settings) -> Principal:
    """
    Verify a dashboard `Authorization: Bearer <token>` header.

    Args:
        authorization: Raw header value
        settings: Provides the JWT secret and algorithm

    Returns:
        Principal allowed to read

    Raises:
        AuthDenied: Missing, malformed, expired or unverifiable token
    """
    parts = (authorization or "").split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise AuthDenied()

    if not settings.jwt_secret:
        logger.warning("Rejecting Bearer token: JWT_SECRET is not configured")
        raise AuthDenied()

    try:
        claims = jwt.decode(parts[1], settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.warning(f"Rejecting Bearer token: {e}")
        raise AuthDenied() from e

    subject = claims.get("sub")
    if not subject:
        raise AuthDenied()

    return Principal(subject=str(subject), can_read=True)


def authorize_ingest(api_key: Optional[str], settings: Settings) -> Optional[Principal]:
    """
    Decide whether a device may ingest.

    Ingestion is open when no key is configured; otherwise `x-api-key` must
    match exactly.

    Returns:
        Principal allowed to ingest, or None when the key is wrong or missing
    """
    expected = settings.ingest_api_key
    if not expected:
        return Principal(subject="device", can_ingest=True)

    if api_key and hmac.compare_digest(api_key.encode(), expected.encode()):
        return Principal(subject="ingest-key", can_ingest=True)

    logger.warning("Rejecting ingestion: missing or invalid x-api-key")
    return None


async def require_reader(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings)
) -> Principal:
    """Reject unauthenticated dashboard calls before they reach the query service."""
    try:
        return authenticate(authorization, settings)
    except AuthDenied as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


async def ingest_principal(
    x_api_key: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings)
) -> Optional[Principal]:
    return authorize_ingest(x_api_key, settings)


async def get_ingestion_gateway(storage: Storage = Depends(get_storage)) -> IngestionGateway:
    """Get ingestion gateway instance."""
    return IngestionGateway(storage=storage)


async def get_query_service(
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings)
) -> QueryService:
    """Get query service instance."""
    return QueryService(
        storage=storage,
        default_history_limit=settings.default_history_limit,
        default_alert_limit=settings.default_alert_limit,
        max_limit=settings.max_query_limit
    )
