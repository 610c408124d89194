"""
Convenience constructor for ready-to-use buckets.
"""

from typing import Optional

from shared.config import get_config
from .ratelimit.token_bucket import TokenBucket
from .store import CounterStore, get_default_store


async def bucket(name: str = "default",
                 rate: Optional[float] = None,
                 burst: Optional[int] = None,
                 prefix: Optional[str] = None,
                 store: Optional[CounterStore] = None,
                 **options) -> TokenBucket:
    """Build a bucket and make sure its namespace exists.

    Unset arguments come from configuration (rate 5/s, burst 10 and prefix
    "rate_limit" by default). Without an explicit store the process-wide
    Redis store is used, pointed at REDIS_URL when set.
    """
    config = get_config()
    engine = TokenBucket(
        name=name,
        rate=rate if rate is not None else config.default_rate,
        burst=burst if burst is not None else config.default_burst,
        namespace_prefix=prefix or config.namespace_prefix,
        store=store if store is not None else get_default_store(),
        config=config,
        **options
    )
    await engine.initialize_namespace()
    return engine
