"""
Forecast Combination Module

Builds the equal-weight ensemble forecast: the elementwise arithmetic mean of
the five model forecasts,

    C_t = (F1_t + F2_t + F3_t + F4_t + F5_t) / 5

Inputs must line up exactly. A missing forecast or one with different
length or timestamps is an AlignmentError; nothing is reweighted or
truncated to make the inputs fit.

Functions:
    - check_alignment: Verify a set of forecasts share length and timestamps
    - combine_forecasts: Equal-weight mean of aligned forecasts
    - get_component_breakdown: Per-component statistics against the ensemble
"""

from typing import Any, Dict, Sequence

import numpy as np

from btc_forecast.exceptions import AlignmentError
from btc_forecast.logger_config import get_logger
from btc_forecast.timeseries import ForecastResult, TimeSeries


logger = get_logger(__name__)

STAGE = "combiner"
COMBINATION_ID = "Combination"


def check_alignment(results: Sequence[ForecastResult]) -> None:
    """
    Verify that every forecast matches the first in length and timestamps.

    Raises:
        AlignmentError: On the first forecast that differs
    """
    reference = results[0]
    for result in results[1:]:
        if len(result) != len(reference):
            error_msg = (
                f"Forecast '{result.model_id}' has {len(result)} points, "
                f"'{reference.model_id}' has {len(reference)}"
            )
            logger.error(error_msg)
            raise AlignmentError(error_msg, stage=STAGE, expected=len(reference), actual=len(result))

        if not result.index.equals(reference.index):
            error_msg = (
                f"Forecast '{result.model_id}' timestamps differ from '{reference.model_id}'"
            )
            logger.error(error_msg)
            raise AlignmentError(error_msg, stage=STAGE,
                                 expected=f"{reference.index[0]}..{reference.index[-1]}",
                                 actual=f"{result.index[0]}..{result.index[-1]}")


def combine_forecasts(
    results: Sequence[ForecastResult],
    expected_count: int = 5,
    model_id: str = COMBINATION_ID,
) -> ForecastResult:
    """
    Average aligned forecasts with equal weights.

    Args:
        results (Sequence[ForecastResult]): One forecast per model
        expected_count (int): Number of forecasts that must be present
        model_id (str): Identifier of the combined forecast

    Returns:
        ForecastResult: Elementwise mean, same timestamps as the inputs

    Raises:
        AlignmentError: If the count differs from expected_count or the
            forecasts do not share length and timestamps

    Examples:
        >>> combined = combine_forecasts([arima, ets, hw, nnar, prophet])
        >>> combined.model_id
        'Combination'
    """
    results = list(results)
    if len(results) != expected_count:
        error_msg = (
            f"Expected {expected_count} forecasts to combine, got {len(results)} "
            f"({', '.join(r.model_id for r in results) or 'none'})"
        )
        logger.error(error_msg)
        raise AlignmentError(error_msg, stage=STAGE, expected=expected_count, actual=len(results))

    if not results:
        error_msg = "No forecasts to combine"
        logger.error(error_msg)
        raise AlignmentError(error_msg, stage=STAGE, expected=expected_count, actual=0)

    check_alignment(results)

    stacked = np.vstack([result.values for result in results])
    combined = stacked.mean(axis=0)

    logger.info(
        f"Combined {len(results)} forecasts "
        f"({', '.join(r.model_id for r in results)}) over {len(combined)} steps"
    )
    return ForecastResult(
        model_id=model_id,
        series=TimeSeries(index=results[0].index, values=combined, name=model_id),
    )


def get_component_breakdown(
    results: Sequence[ForecastResult],
    combined: ForecastResult,
) -> Dict[str, Dict[str, Any]]:
    """
    Describe how each component relates to the ensemble.

    Returns:
        Dict[str, Dict[str, Any]]: Per model id:
            - mean (float): Mean of the component forecast
            - std (float): Standard deviation of the component forecast
            - mean_abs_deviation (float): Mean |component - ensemble|
            - is_flat (bool): Standard deviation below 1e-8, which is a
              legitimate outcome on zero-mean stationary returns
    """
    breakdown = {}
    for result in results:
        deviation = np.abs(result.values - combined.values)
        std = float(np.std(result.values))
        breakdown[result.model_id] = {
            'mean': float(np.mean(result.values)),
            'std': std,
            'mean_abs_deviation': float(np.mean(deviation)),
            'is_flat': std < 1e-8,
        }
        logger.debug(
            f"{result.model_id}: mean={breakdown[result.model_id]['mean']:.6f}, "
            f"std={std:.6f}, MAD from ensemble={breakdown[result.model_id]['mean_abs_deviation']:.6f}"
        )
    return breakdown
