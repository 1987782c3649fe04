from .api_key import verify_api_key, internal_headers
from .dependencies import Caller, get_current_caller, verify_internal_api_key
from .rate_limiter import limiter, user_id_or_ip

__all__ = [
    "verify_api_key",
    "internal_headers",
    "Caller",
    "get_current_caller",
    "verify_internal_api_key",
    "limiter",
    "user_id_or_ip"
]
