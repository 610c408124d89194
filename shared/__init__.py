"""
Shared utilities for the rate limiter service.

This package aggregates common building blocks consumed by the limiter:

- config: Limiter configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus counters for limiter decisions
- errors: Canonical error types and responses
- retry: Backoff calculation and retry decorators

Do not import from service_* packages into shared/.
"""
