"""Panel data API router.

One endpoint per panel type. A panel with no data yet gets ``null`` so the
renderer can draw its placeholder; fetch errors are never reported here.
"""

from typing import Awaitable, Callable, List, Optional, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from ..services.data_service import DataService, SourceDisabledError, UnknownSourceError
from .dependencies import get_data_service

router = APIRouter()

T = TypeVar("T")


class CoinQuoteResponse(BaseModel):
    """Price record for one coin."""
    price: float
    change_24h: Optional[float]


class CryptoResponse(BaseModel):
    """BTC and ETH quotes."""
    btc: CoinQuoteResponse
    eth: CoinQuoteResponse


class WeatherResponse(BaseModel):
    """Current weather snapshot."""
    temperature: int
    windspeed: float
    humidity: float
    conditions: str


class NewsResponse(BaseModel):
    """News headlines."""
    headlines: List[str]


class ImageResponse(BaseModel):
    """Image reference."""
    url: str
    theme: str


class SentimentResponse(BaseModel):
    """Sentiment gauge reading."""
    score: float
    label: str
    color: str


async def _read(getter: Callable[[], Awaitable[Optional[T]]]) -> Optional[T]:
    try:
        return await getter()
    except UnknownSourceError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except SourceDisabledError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get("/crypto", response_model=Optional[CryptoResponse])
async def get_crypto(service: DataService = Depends(get_data_service)):
    """Get BTC/ETH prices."""
    data = await _read(service.get_crypto)
    if data is None:
        return None
    return CryptoResponse(
        btc=CoinQuoteResponse(price=data.btc.price, change_24h=data.btc.change_24h),
        eth=CoinQuoteResponse(price=data.eth.price, change_24h=data.eth.change_24h),
    )


@router.get("/weather", response_model=Optional[WeatherResponse])
async def get_weather(
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    service: DataService = Depends(get_data_service),
):
    """Get current weather, optionally for explicit coordinates."""
    data = await _read(lambda: service.get_weather(latitude, longitude))
    if data is None:
        return None
    return WeatherResponse(
        temperature=data.temperature,
        windspeed=data.windspeed,
        humidity=data.humidity,
        conditions=data.conditions,
    )


@router.get("/news", response_model=Optional[NewsResponse])
async def get_news(service: DataService = Depends(get_data_service)):
    """Get news headlines."""
    data = await _read(service.get_news)
    if data is None:
        return None
    return NewsResponse(headlines=data.headlines)


@router.get("/image", response_model=Optional[ImageResponse])
async def get_image(service: DataService = Depends(get_data_service)):
    """Get a themed image reference."""
    data = await _read(service.get_image)
    if data is None:
        return None
    return ImageResponse(url=data.url, theme=data.theme)


@router.get("/sentiment", response_model=Optional[SentimentResponse])
async def get_sentiment(service: DataService = Depends(get_data_service)):
    """Get the market sentiment gauge reading."""
    data = await _read(service.get_sentiment)
    if data is None:
        return None
    return SentimentResponse(score=data.score, label=data.label, color=data.color)
