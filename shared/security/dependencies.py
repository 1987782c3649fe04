from dataclasses import dataclass

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import APIKeyHeader
from .api_key import verify_api_key

# Defines the expected internal service header
api_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)

USER_ID_HEADER = "X-User-ID"
USER_ROLE_HEADER = "X-User-Role"


@dataclass(frozen=True)
class Caller:
    """Identity forwarded by the API gateway after it validated the JWT."""
    user_id: str
    role: str = ""

    @property
    def is_admin(self) -> bool:
        return "ADMIN" in self.role.upper()

    @property
    def is_seller(self) -> bool:
        return "SELLER" in self.role.upper()


async def get_current_caller(request: Request) -> Caller:
    """Dependency that reads the gateway-injected identity headers."""
    user_id = request.headers.get(USER_ID_HEADER)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {USER_ID_HEADER} header",
        )

    caller = Caller(user_id=user_id, role=request.headers.get(USER_ROLE_HEADER, ""))
    # Store in request state for downstream use (like rate limiting)
    request.state.user_id = caller.user_id
    return caller

async def verify_internal_api_key(api_key: str = Depends(api_key_header)) -> bool:
    """Dependency to validate service-to-service internal requests."""
    if not verify_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-Internal-API-Key header"
        )
    return True
