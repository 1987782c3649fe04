from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from .dependencies import USER_ID_HEADER

def user_id_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Uses the gateway-forwarded user id when present.
    Falls back to the client's IP address otherwise.
    """
    user_id = request.headers.get(USER_ID_HEADER)
    if user_id:
        return f"user:{user_id}"

    return f"ip:{get_remote_address(request)}"

# Initialize the Limiter with our custom key function
limiter = Limiter(key_func=user_id_or_ip)
