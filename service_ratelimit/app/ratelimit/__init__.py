"""
Rate limiting package.

Holds the distributed token bucket engine and the FastAPI middleware that
maps its decisions onto HTTP responses.
"""

from .token_bucket import (
    AcquireResult,
    BucketState,
    Decision,
    DEFAULT_PREFIX,
    TokenBucket,
)

__all__ = ["AcquireResult", "BucketState", "Decision", "DEFAULT_PREFIX", "TokenBucket"]
