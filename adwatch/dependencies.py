import hmac

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from adwatch.config import get_settings

security = HTTPBearer(auto_error=False)


async def require_service_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    x_service_key: str | None = Header(default=None),
) -> None:
    """Trigger endpoints accept the service-role key as Bearer token or X-Service-Key."""
    expected = get_settings().service_role_key
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="SERVICE_ROLE_KEY not configured",
        )

    provided = credentials.credentials if credentials else x_service_key
    if not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid service key",
        )
