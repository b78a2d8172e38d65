"""
ETS Adapter

Error-Trend-Seasonal exponential smoothing in state-space form. The model
form is picked automatically on the training data: additive errors with no
trend, an additive trend, or a damped additive trend, whichever has the
lowest information criterion. Multiplicative errors are not considered
because returns take negative values.
"""

from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.exponential_smoothing.ets import ETSModel

from btc_forecast.exceptions import ConvergenceError
from btc_forecast.logger_config import get_logger
from btc_forecast.models.base import ForecastAdapter, ModelHandle, fit_quietly
from btc_forecast.timeseries import TimeSeries


logger = get_logger(__name__)


def candidate_forms(allow_damped: bool = True) -> List[Dict[str, Any]]:
    forms = [
        {'error': 'add', 'trend': None, 'damped_trend': False},
        {'error': 'add', 'trend': 'add', 'damped_trend': False},
    ]
    if allow_damped:
        forms.append({'error': 'add', 'trend': 'add', 'damped_trend': True})
    return forms


def describe_form(form: Dict[str, Any]) -> str:
    """ETS(A,N,N)-style label of a model form."""
    trend = 'N' if form['trend'] is None else 'Ad' if form['damped_trend'] else 'A'
    return f"ETS(A,{trend},N)"


class EtsAdapter(ForecastAdapter):
    """ETS with automatic form selection."""

    model_id = "ETS"
    min_train_size = 10

    def _fit(self, train: TimeSeries) -> Tuple[Any, np.ndarray, Dict[str, Any]]:
        criterion = self.config.get('information_criterion', 'aicc')
        best = None
        # get_prediction needs pandas data to label its output
        endog = pd.Series(train.values)

        for form in candidate_forms(self.config.get('allow_damped', True)):
            label = describe_form(form)
            try:
                results, converged = fit_quietly(
                    lambda: ETSModel(endog, seasonal=None, **form).fit(disp=False)
                )
            except (ValueError, np.linalg.LinAlgError) as e:
                logger.debug(f"{label} failed: {str(e)}")
                continue

            if not converged:
                logger.debug(f"{label} did not converge")
                continue

            score = float(getattr(results, criterion))
            logger.debug(f"{label}: {criterion.upper()} = {score:.4f}")
            if np.isfinite(score) and (best is None or score < best[2]):
                best = (form, results, score)

        if best is None:
            error_msg = "No ETS form converged on the training data"
            logger.error(error_msg)
            raise ConvergenceError(error_msg, model_type=self.model_id)

        form, results, score = best
        logger.info(f"Selected {describe_form(form)} with {criterion.upper()}={score:.4f}")

        params = {
            'form': describe_form(form),
            criterion: score,
            'smoothing': {name: float(value) for name, value in
                          zip(results.model.param_names, results.params)},
        }
        return results, np.asarray(results.fittedvalues), params

    def _predict(self, handle: ModelHandle, horizon: int, index: pd.DatetimeIndex):
        start = handle.n_train
        prediction = handle.model.get_prediction(start=start, end=start + horizon - 1)
        frame = prediction.summary_frame(alpha=0.05)
        return (
            frame['mean'].to_numpy(),
            frame['pi_lower'].to_numpy(),
            frame['pi_upper'].to_numpy(),
        )
