"""Distributed token bucket rate limiter service."""
