from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

# The scheme tells FastAPI to read a Bearer token from the Authorization header.
# auto_error is off so that deployments without configured tokens stay open.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


def require_auth_token(
    request: Request, token: Annotated[Optional[str], Depends(oauth2_scheme)]
) -> Optional[str]:
    """
    Dependency function that requires a Bearer token listed in ``api_tokens``.

    When no tokens are configured, authentication is disabled.
    """
    accepted = request.app.state.settings.api_tokens
    if not accepted:
        return None

    if not token or token not in accepted:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token
