"""
Forecast Evaluation Pipeline

Runs the full comparison on one price series:

    prices -> log returns -> ADF check -> train/test split
           -> ARIMA, ETS, Holt-Winters, NNAR, Prophet (fit on train,
              forecast the test period)
           -> equal-weight combination
           -> accuracy, residual diagnostics and best model by MAPE

Loader, return and split errors halt the run. A model that fails to fit or
forecast is recorded under `failures` and left out; the combination then
cannot be formed and its AlignmentError is recorded the same way. The
stationarity verdict is informational and never gates the models.

Functions:
    - run_forecast_report: Execute the pipeline and return the report dict
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from btc_forecast.combiner import COMBINATION_ID, combine_forecasts, get_component_breakdown
from btc_forecast.config_loader import get_default_config
from btc_forecast.evaluation import (
    evaluate_forecast,
    evaluate_in_sample,
    forecast_residuals,
    residual_diagnostics,
    select_best_model,
)
from btc_forecast.exceptions import AlignmentError, ForecastPipelineError
from btc_forecast.logger_config import get_logger, log_exception
from btc_forecast.models import ForecastAdapter, build_adapters
from btc_forecast.preprocessing import calculate_log_returns, split_series
from btc_forecast.stationarity import check_stationarity
from btc_forecast.timeseries import TimeSeries


logger = get_logger(__name__)


def _run_stage(stage: str, fn: Callable, *args, **kwargs):
    """
    Call fn, tagging any pipeline error with the stage that raised it.
    """
    try:
        return fn(*args, **kwargs)
    except ForecastPipelineError as e:
        e.stage = e.stage or stage
        logger.error(f"{e.kind} in stage '{e.stage}': {e.error_message}")
        raise


def _describe_failure(error: ForecastPipelineError) -> Dict[str, str]:
    return {
        'kind': error.kind,
        'stage': error.stage or '',
        'message': error.error_message,
    }


def _banner(title: str) -> None:
    logger.info("\n" + "-" * 80)
    logger.info(title)
    logger.info("-" * 80)


def run_forecast_report(
    prices: TimeSeries,
    config: Optional[Dict[str, Any]] = None,
    adapters: Optional[List[ForecastAdapter]] = None,
) -> Dict[str, Any]:
    """
    Compare the five models and their combination on one price series.

    Args:
        prices (TimeSeries): Daily closing prices, all positive
        config (dict, optional): Validated configuration; defaults if None
        adapters (list, optional): Models to compare. Built from config in
            the order ARIMA, ETS, Holt-Winters, NNAR, Prophet if None

    Returns:
        dict: Report containing
            - returns (TimeSeries): Log returns
            - stationarity (StationarityResult or None)
            - split (Split), train_size (int), test_size (int)
            - last_train_price (float): Price at the end of the training period
            - handles (dict): model id -> ModelHandle
            - model_params (dict): model id -> selected parameters
            - forecasts (dict): model id -> ForecastResult, combination last
            - in_sample (dict): model id -> training-set AccuracyReport
            - accuracy (dict): model id -> test-set AccuracyReport
            - diagnostics (dict): model id -> residual diagnostics of the
              test-period errors
            - components (dict): per-model comparison with the combination
            - failures (dict): model id -> {kind, stage, message}
            - best_model (str or None), best_score (float), selection_metric (str)
            - timestamp (str): UTC generation time

    Raises:
        InvalidInputError: If the prices cannot be turned into returns
        InsufficientDataError: If the split leaves an empty partition
        AlignmentError: If a forecast does not line up with the test series
    """
    if config is None:
        config = get_default_config()
        logger.info("Using default configuration")

    evaluation_config = config.get('evaluation', {})
    lags = evaluation_config.get('ljung_box_lags', 10)
    selection_metric = evaluation_config.get('selection_metric', 'MAPE')

    logger.info("=" * 80)
    logger.info("STARTING FORECAST EVALUATION")
    logger.info("=" * 80)

    # ===== STEP 1: LOG RETURNS =====
    _banner("STEP 1: LOG RETURNS")
    returns = _run_stage("returns", calculate_log_returns, prices)

    # ===== STEP 2: STATIONARITY =====
    _banner("STEP 2: STATIONARITY CHECK")
    try:
        stationarity = _run_stage(
            "stationarity", check_stationarity, returns,
            significance=config.get('stationarity', {}).get('significance', 0.05),
        )
    except ForecastPipelineError as e:
        logger.warning(f"Stationarity check skipped: {e.error_message}")
        stationarity = None

    # ===== STEP 3: TRAIN/TEST SPLIT =====
    _banner("STEP 3: TRAIN/TEST SPLIT")
    split = _run_stage("splitter", split_series, returns, ratio=config.get('split', {}).get('ratio', 0.8))
    train, test = split.train, split.test
    logger.info(
        f"Train: {len(train)} returns ({train.first_timestamp.date()} to {train.last_timestamp.date()}), "
        f"test: {len(test)} returns ({test.first_timestamp.date()} to {test.last_timestamp.date()})"
    )
    last_train_price = float(prices.to_series().loc[train.last_timestamp])

    # ===== STEP 4: MODELS =====
    if adapters is None:
        adapters = build_adapters(config)

    handles = {}
    forecasts = {}
    failures = {}
    for number, adapter in enumerate(adapters, start=1):
        _banner(f"STEP 4.{number}: {adapter.model_id}")
        try:
            handle = _run_stage(f"{adapter.model_id}.fit", adapter.fit, train)
            forecast = _run_stage(
                f"{adapter.model_id}.predict", adapter.predict, handle, split.horizon, index=test.index,
            )
        except ForecastPipelineError as e:
            log_exception(logger, e)
            failures[adapter.model_id] = _describe_failure(e)
            continue
        handles[adapter.model_id] = handle
        forecasts[adapter.model_id] = forecast

    # ===== STEP 5: COMBINATION =====
    _banner("STEP 5: EQUAL-WEIGHT COMBINATION")
    components = {}
    try:
        combined = _run_stage(
            "combiner", combine_forecasts, list(forecasts.values()), expected_count=len(adapters),
        )
    except AlignmentError as e:
        failures[COMBINATION_ID] = _describe_failure(e)
    else:
        components = get_component_breakdown(list(forecasts.values()), combined)
        forecasts[COMBINATION_ID] = combined

    # ===== STEP 6: EVALUATION =====
    _banner("STEP 6: EVALUATION")
    in_sample = {
        model_id: _run_stage("evaluator", evaluate_in_sample, handle, train)
        for model_id, handle in handles.items()
    }
    accuracy = {}
    diagnostics = {}
    for model_id, forecast in forecasts.items():
        accuracy[model_id] = _run_stage("evaluator", evaluate_forecast, forecast, test)
        diagnostics[model_id] = residual_diagnostics(forecast_residuals(forecast, test), lags=lags)
        logger.info(f"{model_id} residuals: {diagnostics[model_id]['conclusion']}")

    best_model, best_score = select_best_model(accuracy, metric=selection_metric)

    if failures:
        logger.warning(f"Completed with {len(failures)} failure(s): {', '.join(failures)}")

    logger.info("\n" + "=" * 80)
    logger.info("FORECAST EVALUATION COMPLETED")
    logger.info("=" * 80)

    return {
        'returns': returns,
        'stationarity': stationarity,
        'split': split,
        'train_size': len(train),
        'test_size': len(test),
        'last_train_price': last_train_price,
        'handles': handles,
        'model_params': {model_id: handle.params for model_id, handle in handles.items()},
        'forecasts': forecasts,
        'in_sample': in_sample,
        'accuracy': accuracy,
        'diagnostics': diagnostics,
        'components': components,
        'failures': failures,
        'best_model': best_model,
        'best_score': best_score if best_model is not None else float(np.nan),
        'selection_metric': selection_metric,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
