"""
FastAPI integration for the token bucket.

Denied requests become 429 responses. Limiter failures (store outage,
contention) follow the configured failure policy: "closed" answers 503,
"open" lets the request through and marks the result as degraded.
"""

import math
from typing import Any, Callable, Dict, Optional

from fastapi import HTTPException, Request, Response

from shared.config import BaseConfig, get_config
from shared.errors import Contended, InvalidConfiguration, StoreUnavailable
from shared.logging import (
    clear_context,
    configure_logging,
    get_logger,
    request_id_var,
    set_client_context,
    set_request_id,
)
from ..store import CounterStore, get_default_store
from .token_bucket import TokenBucket


class RateLimitMiddleware:
    """Per-client token buckets for FastAPI routes.

    Use as a dependency: ``@app.get("/", dependencies=[Depends(limiter)])``.
    """

    def __init__(self,
                 store: Optional[CounterStore] = None,
                 rate: Optional[float] = None,
                 burst: Optional[int] = None,
                 namespace_prefix: Optional[str] = None,
                 failure_policy: Optional[str] = None,
                 cost: float = 1,
                 client_id_func: Optional[Callable[[Request], str]] = None,
                 config: Optional[BaseConfig] = None,
                 **bucket_options: Any):
        self.config = config or get_config()
        self.store = store if store is not None else get_default_store()
        self.rate = rate if rate is not None else self.config.default_rate
        self.burst = burst if burst is not None else self.config.default_burst
        self.namespace_prefix = namespace_prefix or self.config.namespace_prefix
        self.failure_policy = failure_policy or self.config.failure_policy
        if self.failure_policy not in ("open", "closed"):
            raise InvalidConfiguration(
                "failure_policy must be \"open\" or \"closed\"",
                details={"failure_policy": self.failure_policy}
            )
        self.cost = cost
        self.client_id_func = client_id_func or self._get_client_id
        self.bucket_options = bucket_options
        # Bad rate, burst or cost fail here rather than on every request
        self.bucket_for("startup", "/").check_cost(cost)
        configure_logging(self.config.service_name, self.config.log_level)
        self.logger = get_logger("ratelimit.middleware")

    def bucket_for(self, client_id: str, endpoint: str) -> TokenBucket:
        """Build the engine for one client and endpoint."""
        return TokenBucket(
            name=f"{client_id}:{endpoint}",
            rate=self.rate,
            burst=self.burst,
            namespace_prefix=self.namespace_prefix,
            store=self.store,
            config=self.config,
            **self.bucket_options
        )

    async def check_request(self, request: Request) -> Dict[str, Any]:
        """Check rate limit for request."""
        client_id = self.client_id_func(request)
        endpoint = request.url.path
        set_client_context(client_id)
        bucket = self.bucket_for(client_id, endpoint)

        try:
            result = await bucket.acquire(self.cost)
        except (StoreUnavailable, Contended) as e:
            self.logger.error("Rate limiter unavailable", client_id=client_id, endpoint=endpoint,
                              error=str(e), code=e.code, policy=self.failure_policy)
            if self.failure_policy == "open":
                return {
                    "allowed": True,
                    "limit": self.burst,
                    "remaining": None,
                    "retry_after": 0.0,
                    "degraded": True,
                    "error": e.code
                }
            raise HTTPException(
                status_code=503,
                detail=e.to_response(request_id_var.get()).model_dump()
            ) from e

        if not result.allowed:
            self.logger.warning("Rate limit exceeded", client_id=client_id, endpoint=endpoint,
                                remaining=result.remaining, retry_after=result.retry_after)

        return {
            "allowed": result.allowed,
            "limit": self.burst,
            "remaining": result.remaining,
            "retry_after": result.retry_after,
            "degraded": False
        }

    async def __call__(self, request: Request, response: Response) -> Dict[str, Any]:
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        try:
            result = await self.check_request(request)
            headers = self.rate_limit_headers(result)
            headers["X-Request-ID"] = request_id

            if not result["allowed"]:
                raise HTTPException(
                    status_code=429,
                    detail={
                        "error": "Rate limit exceeded",
                        "limit": result["limit"],
                        "retry_after": result["retry_after"]
                    },
                    headers=headers
                )

            response.headers.update(headers)
            return result
        finally:
            clear_context()

    @staticmethod
    def rate_limit_headers(result: Dict[str, Any]) -> Dict[str, str]:
        """Propagate rate limiting metadata via standard headers."""
        headers = {"X-RateLimit-Limit": str(result["limit"])}
        if result.get("remaining") is not None:
            headers["X-RateLimit-Remaining"] = str(int(math.floor(result["remaining"])))
        if not result["allowed"]:
            headers["Retry-After"] = str(max(1, math.ceil(result["retry_after"])))
        return headers

    def _get_client_id(self, request: Request) -> str:
        """Extract client ID from request."""
        # Set by upstream auth middleware
        user_info = getattr(request.state, 'user_info', None)
        if isinstance(user_info, dict) and user_info.get('user_id'):
            return user_info['user_id']

        forwarded_for = request.headers.get('X-Forwarded-For')
        if forwarded_for:
            return forwarded_for.split(',')[0].strip()

        real_ip = request.headers.get('X-Real-IP')
        if real_ip:
            return real_ip

        return request.client.host if request.client else 'unknown'
