# API Routers

from . import health, data, cache

__all__ = ["health", "data", "cache"]
