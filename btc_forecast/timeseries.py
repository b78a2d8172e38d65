"""
Time Series Data Model

Immutable containers passed between pipeline stages. No stage mutates its
input: every transformation builds a new TimeSeries.

Classes:
    - TimeSeries: timestamped finite values, strictly increasing index
    - Split: contiguous train/test partition of a return series
    - ForecastResult: a horizon-length forecast tagged with its model id
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from btc_forecast.exceptions import InvalidInputError, AlignmentError


@dataclass(frozen=True, eq=False)
class TimeSeries:
    """
    Ordered (timestamp, value) pairs.

    Invariants (checked on construction, InvalidInputError otherwise):
    - index and values have the same length
    - index is strictly increasing, hence free of duplicates
    - every value is finite

    The values array is stored read-only; use to_series() for a mutable copy.
    """

    index: pd.DatetimeIndex
    values: np.ndarray
    name: Optional[str] = None

    def __post_init__(self):
        try:
            index = pd.DatetimeIndex(self.index)
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"TimeSeries index must be datetime-like: {e}") from e
        values = np.array(self.values, dtype=np.float64).reshape(-1)

        if len(index) != len(values):
            raise InvalidInputError(
                f"Index length ({len(index)}) does not match values length ({len(values)})",
                data_shape=(len(index), len(values)),
            )
        if len(index) > 1 and not (index.is_monotonic_increasing and index.is_unique):
            raise InvalidInputError("TimeSeries timestamps must be strictly increasing")
        if not np.all(np.isfinite(values)):
            n_bad = int(np.sum(~np.isfinite(values)))
            raise InvalidInputError(f"TimeSeries contains {n_bad} non-finite values")

        values.setflags(write=False)
        object.__setattr__(self, 'index', index)
        object.__setattr__(self, 'values', values)

    @classmethod
    def from_series(cls, series: pd.Series, name: Optional[str] = None) -> "TimeSeries":
        """Build a TimeSeries from a pandas Series with a datetime-like index."""
        return cls(index=series.index, values=series.to_numpy(dtype=np.float64),
                   name=name if name is not None else series.name)

    def __len__(self) -> int:
        return len(self.values)

    @property
    def first_timestamp(self) -> pd.Timestamp:
        return self.index[0]

    @property
    def last_timestamp(self) -> pd.Timestamp:
        return self.index[-1]

    def to_series(self) -> pd.Series:
        return pd.Series(self.values.copy(), index=self.index.copy(), name=self.name)

    def slice(self, start: Optional[int] = None, stop: Optional[int] = None) -> "TimeSeries":
        """Positional slice, returned as a new TimeSeries."""
        return TimeSeries(index=self.index[start:stop], values=self.values[start:stop], name=self.name)

    def concat(self, other: "TimeSeries") -> "TimeSeries":
        """Append a series whose timestamps all follow this one's."""
        return TimeSeries(
            index=self.index.append(other.index),
            values=np.concatenate([self.values, other.values]),
            name=self.name,
        )

    def equals(self, other: "TimeSeries") -> bool:
        """Exact equality of timestamps and values."""
        return (
            isinstance(other, TimeSeries)
            and self.index.equals(other.index)
            and np.array_equal(self.values, other.values)
        )

    def __repr__(self):
        if len(self) == 0:
            return f"TimeSeries(name={self.name!r}, empty)"
        return (
            f"TimeSeries(name={self.name!r}, n={len(self)}, "
            f"{self.first_timestamp.date()}..{self.last_timestamp.date()})"
        )


@dataclass(frozen=True)
class Split:
    """Contiguous training prefix and testing suffix of one series."""

    train: TimeSeries
    test: TimeSeries

    @property
    def horizon(self) -> int:
        return len(self.test)


@dataclass(frozen=True, eq=False)
class ForecastResult:
    """
    Forecast of one model over the test horizon.

    lower/upper hold prediction interval bounds when the model provides them.
    """

    model_id: str
    series: TimeSeries
    lower: Optional[np.ndarray] = None
    upper: Optional[np.ndarray] = None

    def __post_init__(self):
        for bound_name in ('lower', 'upper'):
            bound = getattr(self, bound_name)
            if bound is None:
                continue
            bound = np.array(bound, dtype=np.float64).reshape(-1)
            if len(bound) != len(self.series):
                raise AlignmentError(
                    f"{self.model_id} {bound_name} bound has {len(bound)} points, "
                    f"forecast has {len(self.series)}",
                    expected=len(self.series),
                    actual=len(bound),
                )
            bound.setflags(write=False)
            object.__setattr__(self, bound_name, bound)

    def __len__(self) -> int:
        return len(self.series)

    @property
    def index(self) -> pd.DatetimeIndex:
        return self.series.index

    @property
    def values(self) -> np.ndarray:
        return self.series.values
