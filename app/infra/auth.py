"""Bearer authentication for the console backend.

Identity is established upstream; this layer only requires a bearer token
and hands it on to the registry with every call.
"""

from typing import Optional

from fastapi import HTTPException, Path, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.models.principal import Principal

bearer_scheme = HTTPBearer(auto_error=False)


def principal_for(user_id: str, token: str) -> Principal:
    """Principal whose token getter returns the caller's forwarded token."""
    async def get_token() -> str:
        return token

    return Principal(user_id=user_id, get_token=get_token)


async def get_principal(
    user_id: str = Path(..., min_length=1, description="Registry user id"),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Principal:
    """
    Resolve the authenticated principal of a request.

    Raises:
        HTTPException: 401 if no bearer token was sent
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token required. Provide an Authorization: Bearer <token> header.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal_for(user_id, credentials.credentials)
