"""
Request dependencies for the reference booking service.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from crewbook.services.booking_store import BookingStore

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_customer_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """The bearer token is the customer id; there is no token issuance here."""
    if credentials is None or not credentials.credentials.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials.strip()


def get_store(request: Request) -> BookingStore:
    return request.app.state.store
