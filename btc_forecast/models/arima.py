"""
ARIMA Adapter

AutoRegressive Integrated Moving Average on the return series. The (p, d, q)
order is chosen on the training data by grid search minimizing an
information criterion; the selected model is refitted and must converge.

Functions:
    - find_optimal_order: Grid search over (p, d, q) by AIC/BIC
    - fit_arima: Fit one ARIMA order and check convergence
"""

from typing import Any, Dict, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.arima.model import ARIMA

from btc_forecast.exceptions import ConvergenceError
from btc_forecast.logger_config import get_logger
from btc_forecast.models.base import ForecastAdapter, ModelHandle, fit_quietly
from btc_forecast.timeseries import TimeSeries


logger = get_logger(__name__)


def fit_arima(values: np.ndarray, order: Tuple[int, int, int]):
    """
    Fit an ARIMA model with the given (p, d, q) order.

    Args:
        values (np.ndarray): Training observations
        order (Tuple[int, int, int]): ARIMA parameters (p, d, q)

    Returns:
        statsmodels.tsa.arima.model.ARIMAResults: Fitted results

    Raises:
        ValueError: If any order component is negative
        ConvergenceError: If the optimizer does not converge
    """
    p, d, q = order
    if p < 0 or d < 0 or q < 0:
        error_msg = f"Invalid ARIMA order: {order}. All parameters must be non-negative"
        logger.error(error_msg)
        raise ValueError(error_msg)

    results, converged = fit_quietly(lambda: ARIMA(values, order=order).fit())
    if not converged:
        error_msg = f"ARIMA{order} failed to converge"
        logger.error(error_msg)
        raise ConvergenceError(error_msg, model_type="ARIMA", parameters=order)

    logger.info(f"ARIMA{order} fitted. AIC: {results.aic:.4f}, BIC: {results.bic:.4f}")
    return results


def find_optimal_order(
    values: np.ndarray,
    max_p: int = 3,
    max_d: int = 1,
    max_q: int = 3,
    information_criterion: str = 'aic',
) -> Tuple[Tuple[int, int, int], float]:
    """
    Find the (p, d, q) order minimizing an information criterion.

    Every combination in [0, max_p] x [0, max_d] x [0, max_q] is fitted;
    candidates that raise or fail to converge are skipped.

    Args:
        values (np.ndarray): Training observations
        max_p (int): Maximum AR order
        max_d (int): Maximum differencing order
        max_q (int): Maximum MA order
        information_criterion (str): 'aic' or 'bic'

    Returns:
        Tuple[Tuple[int, int, int], float]: Best order and its criterion value

    Raises:
        ConvergenceError: If no candidate order converged

    Examples:
        >>> order, score = find_optimal_order(returns.values, max_p=2, max_d=0, max_q=2)
        >>> print(f"Optimal ARIMA order: {order}")
    """
    logger.info(
        f"Starting ARIMA order search. Max P: {max_p}, Max D: {max_d}, Max Q: {max_q}, "
        f"criterion: {information_criterion}, series length: {len(values)}"
    )

    best_order = None
    best_score = float("inf")

    for d in range(max_d + 1):
        for p in range(max_p + 1):
            for q in range(max_q + 1):
                order = (p, d, q)
                try:
                    results, converged = fit_quietly(lambda: ARIMA(values, order=order).fit())
                except (ValueError, np.linalg.LinAlgError) as e:
                    logger.debug(f"Order {order} failed: {str(e)}")
                    continue

                if not converged:
                    logger.debug(f"Order {order} did not converge")
                    continue

                score = getattr(results, information_criterion)
                logger.debug(f"Order {order}: {information_criterion.upper()} = {score:.4f}")

                if np.isfinite(score) and score < best_score:
                    best_score = score
                    best_order = order

    if best_order is None:
        error_msg = "No ARIMA order in the search space converged"
        logger.error(error_msg)
        raise ConvergenceError(error_msg, model_type="ARIMA",
                               parameters={'max_p': max_p, 'max_d': max_d, 'max_q': max_q})

    logger.info(
        f"Optimal ARIMA order found: {best_order} with "
        f"{information_criterion.upper()}: {best_score:.4f}"
    )
    return best_order, float(best_score)


class ArimaAdapter(ForecastAdapter):
    """ARIMA with information-criterion order selection."""

    model_id = "ARIMA"
    min_train_size = 10

    def _fit(self, train: TimeSeries) -> Tuple[Any, np.ndarray, Dict[str, Any]]:
        criterion = self.config.get('information_criterion', 'aic')
        order, score = find_optimal_order(
            train.values,
            max_p=self.config.get('max_p', 3),
            max_d=self.config.get('max_d', 1),
            max_q=self.config.get('max_q', 3),
            information_criterion=criterion,
        )
        results = fit_arima(train.values, order)
        params = {
            'order': order,
            criterion: score,
            'coefficients': {name: float(value) for name, value in
                             zip(results.model.param_names, results.params)},
        }
        return results, results.fittedvalues, params

    def _predict(self, handle: ModelHandle, horizon: int, index: pd.DatetimeIndex):
        forecast = handle.model.get_forecast(steps=horizon)
        intervals = np.asarray(forecast.conf_int(alpha=0.05))
        return np.asarray(forecast.predicted_mean), intervals[:, 0], intervals[:, 1]
