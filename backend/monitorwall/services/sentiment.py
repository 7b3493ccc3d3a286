"""Market sentiment derived from the crypto snapshot.

BTC is weighted more heavily than ETH, the mean is amplified for visual range
and clamped to [-100, 100], then mapped to one of five ordered bands.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from .sources import CryptoSnapshot

BTC_WEIGHT = 2.0
ETH_WEIGHT = 1.5
AMPLIFICATION = 5.0
SCORE_MIN = -100.0
SCORE_MAX = 100.0

NEUTRAL_LABEL = "NEUTRAL"
NEUTRAL_COLOR = "#4A8FBD"

# (lower bound, label, color); a score must be strictly greater than the bound.
SENTIMENT_BANDS: List[Tuple[float, str, str]] = [
    (50.0, "VERY BULLISH", "#00FF00"),
    (20.0, "BULLISH", "#40FF40"),
    (-20.0, NEUTRAL_LABEL, NEUTRAL_COLOR),
    (-50.0, "BEARISH", "#FF4040"),
]
FLOOR_BAND: Tuple[str, str] = ("VERY BEARISH", "#FF0000")


@dataclass(frozen=True)
class SentimentResult:
    """Sentiment gauge reading."""
    score: float  # -100 to 100
    label: str
    color: str


NEUTRAL_SENTIMENT = SentimentResult(score=0.0, label=NEUTRAL_LABEL, color=NEUTRAL_COLOR)


def clamp_score(score: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, score))


def raw_score(btc_change_24h: Optional[float], eth_change_24h: Optional[float]) -> float:
    """Unclamped score from the two 24h changes (absent counts as 0)."""
    btc_sentiment = (btc_change_24h or 0) * BTC_WEIGHT
    eth_sentiment = (eth_change_24h or 0) * ETH_WEIGHT
    return (btc_sentiment + eth_sentiment) / 2 * AMPLIFICATION


def band_for_score(score: float) -> Tuple[str, str]:
    """Return (label, color) for a clamped score."""
    for lower_bound, label, color in SENTIMENT_BANDS:
        if score > lower_bound:
            return label, color
    return FLOOR_BAND


def compute_sentiment(crypto: Optional[CryptoSnapshot]) -> SentimentResult:
    """Compute the sentiment gauge reading; no data gives a neutral reading."""
    if crypto is None:
        return NEUTRAL_SENTIMENT

    score = clamp_score(raw_score(crypto.btc.change_24h, crypto.eth.change_24h))
    label, color = band_for_score(score)
    return SentimentResult(score=score, label=label, color=color)
