"""
Return alignment for heterogeneous price histories.

Turns ticker -> price bars into a (periods x assets) simple-return matrix:
1. Per ticker: stable sort by timestamp, keep the last close per timestamp
2. Intersect timestamps across tickers (inner join, never a union)
3. Apply start (>=), end (<=) and lookback (last N) filters, in that order
4. Compute close[t] / close[t-1] - 1 and infer the sampling frequency

Timestamps (bars and the start/end filters) are compared as naive UTC, so
timezone-aware and naive inputs can be mixed.

The frequency is inferred from the aligned timeline rather than assumed, so
daily, weekly and intraday inputs all annualize correctly.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import reduce
from typing import Any

import numpy as np
import polars as pl
from numpy.typing import NDArray

from libs.common.exceptions import ConfigError, DataError
from libs.portfolio.models import OptimizationRequest, PriceBar

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR = 365.25 * 24 * 3600
MIN_ABS_PRICE = 1e-12

# Internal column name; cannot collide with a ticker column after rename.
_TS = "__timestamp__"


@dataclass(frozen=True, eq=False)
class ReturnData:
    """Aligned per-period simple returns."""

    tickers: list[str]  # Sorted case-insensitively
    returns: NDArray[np.floating[Any]]  # periods x assets
    return_dates: list[datetime]  # Timestamp closing each return period
    periods_per_year: float

    @property
    def observations(self) -> int:
        return int(self.returns.shape[0])


def sort_tickers(tickers: Sequence[str]) -> list[str]:
    """Sort tickers case-insensitively, rejecting names that differ only by case."""
    seen: dict[str, str] = {}
    for ticker in tickers:
        key = ticker.casefold()
        if key in seen:
            raise ConfigError(f"Tickers '{seen[key]}' and '{ticker}' differ only by case.")
        seen[key] = ticker
    return sorted(tickers, key=lambda t: (t.casefold(), t))


def to_naive_utc(timestamp: datetime) -> datetime:
    """Aware timestamps are converted to UTC; naive ones are taken as UTC already."""
    if timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone(UTC).replace(tzinfo=None)


def infer_periods_per_year(timestamps: Sequence[datetime], override: float | None = None) -> float:
    """
    Infer how many return periods fit in a year.

    periods_per_year = observations * seconds_per_year / total_duration_seconds

    Args:
        timestamps: Ordered aligned timestamps (prices, not returns)
        override: Explicit frequency; must be finite and positive

    Raises:
        DataError: If the override is invalid, the timeline does not advance,
            or the result is not a positive finite number
    """
    if override is not None:
        if not math.isfinite(override) or override <= 0:
            raise DataError("Override for periods per year must be a positive finite number.")
        return float(override)

    if len(timestamps) < 2:
        raise DataError("Cannot infer frequency from fewer than two timestamps.")

    duration_seconds = (timestamps[-1] - timestamps[0]).total_seconds()
    if duration_seconds <= 0:
        raise DataError("Cannot infer frequency when timestamps do not advance.")

    observations = len(timestamps) - 1
    periods_per_year = observations * SECONDS_PER_YEAR / duration_seconds
    if not math.isfinite(periods_per_year) or periods_per_year <= 0:
        raise DataError("Failed to infer a valid sampling frequency.")

    return periods_per_year


class ReturnAligner:
    """Builds ReturnData from an OptimizationRequest."""

    def build(self, request: OptimizationRequest) -> ReturnData:
        """
        Align price histories and derive the return matrix.

        Raises:
            DataError: Fewer than two points for a ticker, fewer than two
                aligned timestamps, invalid denominator price, bad frequency
            ConfigError: Tickers colliding case-insensitively
        """
        if not request.prices_by_ticker:
            raise DataError("No tickers provided.")

        tickers = sort_tickers(list(request.prices_by_ticker))
        frames = [self._price_frame(t, request.prices_by_ticker[t]) for t in tickers]

        aligned = self._align(frames, request)
        if aligned.height < 2:
            raise DataError("Not enough aligned timestamps to compute returns.")

        timestamps: list[datetime] = aligned[_TS].to_list()
        self._check_denominators(aligned, tickers, timestamps)

        returns = (
            aligned.select([(pl.col(t) / pl.col(t).shift(1) - 1.0).alias(t) for t in tickers])
            .slice(1)
            .to_numpy()
            .astype(np.float64)
        )
        # Non-finite returns (e.g. inf/inf) are zeroed instead of poisoning the moments.
        returns = np.where(np.isfinite(returns), returns, 0.0)

        periods_per_year = infer_periods_per_year(timestamps, request.periods_per_year_override)

        logger.info(
            "Aligned returns",
            extra={
                "tickers": len(tickers),
                "observations": int(returns.shape[0]),
                "first": timestamps[0],
                "last": timestamps[-1],
                "periods_per_year": round(periods_per_year, 4),
            },
        )

        return ReturnData(
            tickers=tickers,
            returns=returns,
            return_dates=timestamps[1:],
            periods_per_year=periods_per_year,
        )

    def _price_frame(self, ticker: str, bars: list[PriceBar]) -> pl.DataFrame:
        """Sorted, deduplicated (last close wins) closes for one ticker."""
        if len(bars) < 2:
            raise DataError(f"Ticker '{ticker}' must contain at least two price points.")

        frame = (
            pl.DataFrame(
                {
                    _TS: [to_naive_utc(bar.timestamp) for bar in bars],
                    "close": [float(bar.close) for bar in bars],
                }
            )
            .sort(_TS, maintain_order=True)
            .unique(subset=[_TS], keep="last", maintain_order=True)
        )

        if frame.height < 2:
            raise DataError(f"Ticker '{ticker}' must contain at least two price points.")

        return frame.rename({"close": ticker})

    def _align(self, frames: list[pl.DataFrame], request: OptimizationRequest) -> pl.DataFrame:
        aligned = reduce(lambda left, right: left.join(right, on=_TS, how="inner"), frames)
        aligned = aligned.sort(_TS)

        if request.start is not None:
            aligned = aligned.filter(pl.col(_TS) >= to_naive_utc(request.start))
        if request.end is not None:
            aligned = aligned.filter(pl.col(_TS) <= to_naive_utc(request.end))
        if request.lookback_periods is not None and aligned.height > request.lookback_periods:
            aligned = aligned.tail(request.lookback_periods)

        return aligned

    @staticmethod
    def _check_denominators(
        aligned: pl.DataFrame, tickers: list[str], timestamps: list[datetime]
    ) -> None:
        previous = aligned.select(tickers).head(aligned.height - 1).to_numpy().astype(np.float64)
        invalid = ~np.isfinite(previous) | (np.abs(previous) < MIN_ABS_PRICE)
        if invalid.any():
            row, col = (int(i) for i in np.argwhere(invalid)[0])
            raise DataError(
                f"Invalid price for '{tickers[col]}' at {timestamps[row].isoformat()}."
            )
