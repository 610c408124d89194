"""
Rate limiter application package.

- store: counter store adapters (Redis, in-process)
- ratelimit: token bucket engine and HTTP middleware
- factory: bucket() convenience constructor
"""
