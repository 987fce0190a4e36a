"""
Request dependencies for FastAPI.

The store and ingestion service are created once in the application lifespan
and kept on `app.state`; these dependencies hand them to route handlers.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from crataegus.app.core.exceptions import AuthenticationError
from crataegus.app.services.ingestion import IngestionService
from crataegus.app.services.location_store import LocationStore

# GPSLogger sends the username and password as HTTP basic auth
security = HTTPBasic(auto_error=False)


def get_store(request: Request) -> LocationStore:
    return request.app.state.store


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service


async def get_current_user(
    credentials: HTTPBasicCredentials = Depends(security),
    store: LocationStore = Depends(get_store)
) -> str:
    """
    FastAPI dependency for HTTP basic authentication against the user table.

    Returns:
        The authenticated username

    Raises:
        AuthenticationError: 401 if credentials are missing or wrong
    """
    if credentials is None:
        raise AuthenticationError("Missing credentials")
    if not await store.check_credentials(credentials.username, credentials.password):
        raise AuthenticationError("Invalid username or password")
    return credentials.username
