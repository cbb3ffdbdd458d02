from oapoint.ratelimit.storage import TTLStore
from oapoint.ratelimit.middleware import RateLimitMiddleware, RequestPacer

__all__ = ["TTLStore", "RateLimitMiddleware", "RequestPacer"]
