"""Cache diagnostics and reset router.

Backs the status overlay and the operator refresh control:
- Cache status per cached key (age, expiry, cached value)
- Source diagnostics (health, hit rate, failures)
- Reset: drop everything and refetch all enabled sources
"""

from dataclasses import asdict, is_dataclass
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from ..services.data_service import DataService
from .dependencies import get_data_service

router = APIRouter()


class CacheEntryResponse(BaseModel):
    """Cache entry diagnostics."""
    age_seconds: int
    expired: bool
    cache_ttl_seconds: float
    fetched_at: str
    data: Any


class SourceStatusResponse(BaseModel):
    """Source diagnostics."""
    key: str
    enabled: bool
    healthy: bool
    cached: bool
    cache_ttl_seconds: float
    hits: int
    misses: int
    failures: int
    hit_rate: Optional[float]
    last_attempt: Optional[str]
    last_success: Optional[str]
    last_error: Optional[str]


def _plain(value: Any) -> Any:
    return asdict(value) if is_dataclass(value) else value


@router.get("/status", response_model=Dict[str, CacheEntryResponse])
async def get_cache_status(service: DataService = Depends(get_data_service)):
    """Get age, expiry and value of every cached key."""
    return {
        key: CacheEntryResponse(
            age_seconds=entry.age_seconds,
            expired=entry.expired,
            cache_ttl_seconds=entry.cache_ttl_seconds,
            fetched_at=entry.fetched_at.isoformat(),
            data=_plain(entry.data),
        )
        for key, entry in service.get_cache_status().items()
    }


@router.get("/sources", response_model=List[SourceStatusResponse])
async def get_source_statuses(service: DataService = Depends(get_data_service)):
    """Get health and hit/miss counters for every source."""
    return [
        SourceStatusResponse(
            key=s.key,
            enabled=s.enabled,
            healthy=s.healthy,
            cached=s.cached,
            cache_ttl_seconds=s.cache_ttl_seconds,
            hits=s.hits,
            misses=s.misses,
            failures=s.failures,
            hit_rate=s.hit_rate,
            last_attempt=s.last_attempt.isoformat() if s.last_attempt else None,
            last_success=s.last_success.isoformat() if s.last_success else None,
            last_error=s.last_error,
        )
        for s in service.get_source_statuses()
    ]


@router.post("/reset", status_code=status.HTTP_204_NO_CONTENT)
async def reset_cache(service: DataService = Depends(get_data_service)):
    """Clear the cache and refetch all enabled sources."""
    await service.reset_cache()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
