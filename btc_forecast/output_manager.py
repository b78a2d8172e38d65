"""
Output Manager Module for the Bitcoin Return Forecasting Report

Turns the pipeline's report dictionary into files and readable text.

Key Features:
    - CSV export: one row per test timestamp with the actual return and
      every forecast side by side
    - JSON export with accuracy, diagnostics, parameters and failures
    - Plain-text summary for the console
    - Path validation and directory creation

Functions:
    - validate_output_path: Validate and create output directories
    - export_to_csv: Export test-period forecasts to CSV
    - export_to_json: Export the full report to JSON
    - format_report_summary: Create human-readable summary
"""

import csv
import json
from pathlib import Path
from typing import Any, Dict

import numpy as np

from btc_forecast.evaluation import METRIC_NAMES
from btc_forecast.exceptions import FileIOError
from btc_forecast.logger_config import get_logger, log_exception
from btc_forecast.preprocessing import reconstruct_prices


logger = get_logger(__name__)


def validate_output_path(output_path: str) -> bool:
    """
    Validate and prepare output directory for file writing.

    Creates parent directories if needed and checks they are writable.

    Returns:
        bool: True if the directory is ready, False otherwise (errors are
            logged, not raised)

    Examples:
        >>> if validate_output_path("output/report.csv"):
        ...     export_to_csv("output/report.csv", result)
    """
    parent_dir = Path(output_path).parent
    try:
        parent_dir.mkdir(parents=True, exist_ok=True)
        test_file = parent_dir / ".write_test_tmp"
        test_file.touch()
        test_file.unlink()
    except OSError as e:
        logger.error(f"No write permission for directory {parent_dir}: {str(e)}")
        return False

    logger.info(f"Output path validated: {parent_dir}")
    return True


def _json_value(value: Any) -> Any:
    """Convert numpy scalars, non-finite floats and tuples to JSON-safe values."""
    if isinstance(value, dict):
        return {str(k): _json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_value(v) for v in value]
    if isinstance(value, np.ndarray):
        return [_json_value(v) for v in value.tolist()]
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        return float(value) if np.isfinite(value) else None
    if isinstance(value, (np.bool_,)):
        return bool(value)
    return value


def export_to_csv(output_path: str, result: Dict[str, Any]) -> None:
    """
    Export test-period forecasts to CSV.

    CSV Format:
        timestamp,actual,ARIMA,ETS,Holt-Winters,NNAR,Prophet,Combination
        2023-03-02,0.0125,0.0004,0.0001,-0.0011,0.0023,0.0009,0.0005

    Args:
        output_path (str): File path where the CSV will be written
        result (dict): Report returned by run_forecast_report

    Raises:
        FileIOError: If the directory cannot be prepared or the write fails
    """
    if not validate_output_path(output_path):
        raise FileIOError(f"Failed to validate output path: {output_path}",
                          file_path=output_path, operation="write")

    test = result['split'].test
    forecasts = result['forecasts']
    fieldnames = ['timestamp', 'actual'] + list(forecasts)

    try:
        with open(output_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for i, timestamp in enumerate(test.index):
                row = {'timestamp': timestamp.strftime('%Y-%m-%d'), 'actual': test.values[i]}
                row.update({model_id: forecast.values[i] for model_id, forecast in forecasts.items()})
                writer.writerow(row)
    except OSError as e:
        log_exception(logger, e)
        raise FileIOError(f"CSV export failed: {str(e)}",
                          file_path=output_path, operation="write") from e

    logger.info(f"CSV export successful: {output_path} ({len(test)} rows, {len(forecasts)} forecasts)")


def export_to_json(output_path: str, result: Dict[str, Any]) -> None:
    """
    Export the report to JSON.

    JSON Format:
    {
      "timestamp": "2026-10-18T08:00:00+00:00",
      "train_size": 2400,
      "test_size": 600,
      "stationarity": {"statistic": -12.3, "p_value": 0.0, "is_stationary": true},
      "test_index": ["2023-03-02", ...],
      "actual": [...],
      "forecasts": {"ARIMA": {"values": [...], "lower": [...], "upper": [...],
                              "implied_prices": [...]}, ...},
      "accuracy": {"ARIMA": {"ME": ..., "RMSE": ..., ...}, ...},
      "in_sample": {...},
      "diagnostics": {...},
      "model_params": {...},
      "failures": {"NNAR": {"kind": "ConvergenceError", "stage": "NNAR.fit", "message": "..."}},
      "best_model": {"model_id": "ETS", "metric": "MAPE", "score": 101.2}
    }

    Non-finite metric values are written as null.

    Raises:
        FileIOError: If the directory cannot be prepared or the write fails
    """
    if not validate_output_path(output_path):
        raise FileIOError(f"Failed to validate output path: {output_path}",
                          file_path=output_path, operation="write")

    test = result['split'].test
    stationarity = result.get('stationarity')
    base_price = result.get('last_train_price')

    forecasts = {}
    for model_id, forecast in result['forecasts'].items():
        entry = {'values': forecast.values}
        if forecast.lower is not None:
            entry['lower'] = forecast.lower
            entry['upper'] = forecast.upper
        if base_price is not None:
            entry['implied_prices'] = reconstruct_prices(base_price, forecast.values)
        forecasts[model_id] = entry

    json_data = {
        "timestamp": result.get('timestamp'),
        "train_size": result['train_size'],
        "test_size": result['test_size'],
        "stationarity": None if stationarity is None else {
            "statistic": stationarity.statistic,
            "p_value": stationarity.p_value,
            "is_stationary": stationarity.is_stationary,
        },
        "test_index": [ts.strftime('%Y-%m-%d') for ts in test.index],
        "actual": test.values,
        "forecasts": forecasts,
        "accuracy": {model_id: report.as_dict() for model_id, report in result['accuracy'].items()},
        "in_sample": {model_id: report.as_dict() for model_id, report in result['in_sample'].items()},
        "diagnostics": result.get('diagnostics', {}),
        "model_params": result.get('model_params', {}),
        "failures": result.get('failures', {}),
        "best_model": {
            "model_id": result.get('best_model'),
            "metric": result.get('selection_metric'),
            "score": result.get('best_score'),
        },
    }

    try:
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(_json_value(json_data), f, indent=2, default=str)
    except (OSError, TypeError) as e:
        log_exception(logger, e)
        raise FileIOError(f"JSON export failed: {str(e)}",
                          file_path=output_path, operation="write") from e

    logger.info(f"JSON export successful: {output_path}")


def _format_metric(value: float) -> str:
    if not np.isfinite(value):
        return f"{'NaN':>11s}"
    return f"{value:11.5f}"


def _accuracy_table(reports: Dict[str, Any]) -> list:
    lines = [f"{'Model':14s}" + "".join(f"{name:>11s}" for name in METRIC_NAMES)]
    for model_id, report in reports.items():
        lines.append(f"{model_id:14s}" + "".join(_format_metric(report[name]) for name in METRIC_NAMES))
    return lines


def format_report_summary(result: Dict[str, Any]) -> str:
    """
    Create human-readable summary of the forecast comparison.

    Sections: data and split, stationarity, training-set accuracy, test-set
    accuracy, residual diagnostics, failures and the conclusion.

    Raises:
        TypeError: If result is not a dictionary
        ValueError: If result is missing the accuracy reports
    """
    if not isinstance(result, dict):
        error_msg = f"result must be a dictionary, got {type(result)}"
        logger.error(error_msg)
        raise TypeError(error_msg)

    if 'accuracy' not in result:
        error_msg = "result missing required key 'accuracy'"
        logger.error(error_msg)
        raise ValueError(error_msg)

    lines = []
    lines.append("=" * 92)
    lines.append("BITCOIN LOG-RETURN FORECAST COMPARISON")
    lines.append("=" * 92)
    lines.append(f"\nGenerated: {result.get('timestamp', 'N/A')}")
    if result.get('ticker'):
        lines.append(f"Ticker: {result['ticker']}")
    lines.append(
        f"Training returns: {result.get('train_size', 'N/A')}, "
        f"test returns (horizon): {result.get('test_size', 'N/A')}"
    )

    stationarity = result.get('stationarity')
    lines.append("\n" + "-" * 92)
    lines.append("STATIONARITY (AUGMENTED DICKEY-FULLER)")
    lines.append("-" * 92)
    if stationarity is None:
        lines.append("Not available")
    else:
        verdict = "stationary" if stationarity.is_stationary else "non-stationary"
        lines.append(
            f"ADF statistic: {stationarity.statistic:.4f}, p-value: {stationarity.p_value:.4f} "
            f"-> {verdict}"
        )

    if result.get('in_sample'):
        lines.append("\n" + "-" * 92)
        lines.append("TRAINING SET ACCURACY")
        lines.append("-" * 92)
        lines.extend(_accuracy_table(result['in_sample']))

    lines.append("\n" + "-" * 92)
    lines.append("TEST SET ACCURACY")
    lines.append("-" * 92)
    lines.extend(_accuracy_table(result['accuracy']))

    diagnostics = result.get('diagnostics', {})
    if diagnostics:
        lines.append("\n" + "-" * 92)
        lines.append("RESIDUAL DIAGNOSTICS (TEST PERIOD)")
        lines.append("-" * 92)
        for model_id, diag in diagnostics.items():
            lines.append(f"{model_id}:")
            if diag['ljung_box_pvalue'] is not None:
                lines.append(
                    f"  Ljung-Box Q({diag['lags_tested']}) = {diag['ljung_box_stat']:.4f}, "
                    f"p-value = {diag['ljung_box_pvalue']:.4f}"
                )
            lines.append(f"  {diag['conclusion']}")
            dist = diag.get('distribution')
            if dist:
                lines.append(
                    f"  mean={dist['mean']:.6f}, std={dist['std']:.6f}, "
                    f"skewness={dist['skewness']:.3f}, kurtosis={dist['kurtosis']:.3f}, "
                    f"Jarque-Bera p={dist['jarque_bera_pvalue']:.4f}"
                )

    failures = result.get('failures', {})
    if failures:
        lines.append("\n" + "-" * 92)
        lines.append("FAILURES")
        lines.append("-" * 92)
        for model_id, failure in failures.items():
            lines.append(f"{model_id}: {failure['kind']} in stage '{failure['stage']}'")
            lines.append(f"  {failure['message'].splitlines()[0]}")

    lines.append("\n" + "-" * 92)
    lines.append("CONCLUSION")
    lines.append("-" * 92)
    metric = result.get('selection_metric', 'MAPE')
    best_model = result.get('best_model')
    if best_model is None:
        lines.append(f"No model produced a finite {metric}")
    else:
        lines.append(f"Best model by {metric}: {best_model} ({result['best_score']:.4f})")

    lines.append("\n" + "=" * 92)
    return "\n".join(lines)
