"""
Configuration System Module - Centralized Report Parameter Management

Handles loading, validating and merging the parameters of the forecasting
report: data source, train/test split, the five model adapters, evaluation
and output. Parameters come from a YAML file (JSON accepted by suffix), are
layered over hardcoded defaults and can be overridden programmatically.

Usage Examples:
    # Load default configuration
    config = load_config()

    # Load from specific file
    config = load_config('config/custom_params.yml')

    # Merge CLI overrides
    merged = merge_config(config, {'data': {'ticker': 'ETH-USD'}})
"""

import copy
import json
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

from btc_forecast.exceptions import ConfigurationError
from btc_forecast.logger_config import get_logger


logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path('config/model_params.yml')

REQUIRED_SECTIONS = [
    'data', 'split', 'stationarity', 'arima', 'ets', 'holt_winters',
    'nnar', 'prophet', 'evaluation', 'output',
]

SELECTION_METRICS = ['ME', 'RMSE', 'MAE', 'MPE', 'MAPE', 'ACF1', "Theil's U"]


def get_default_config() -> Dict[str, Any]:
    """
    Return hardcoded default configuration.

    Used when no configuration file exists, and as the base every loaded file
    is merged over, so files only need to list the values they change.

    Returns:
        dict: Complete default configuration

    Examples:
        >>> config = get_default_config()
        >>> config['split']['ratio']
        0.8
        >>> config['arima']['information_criterion']
        'aic'
    """
    return {
        # Series Loader: input_file wins over the market-data provider
        'data': {
            'ticker': 'BTC-USD',
            'start': '2014-09-17',
            'end': None,
            'input_file': None,
            'price_column': 'Close',
            'date_column': 'Date',
        },
        'split': {
            'ratio': 0.8,
        },
        'stationarity': {
            'significance': 0.05,
        },
        'arima': {
            'max_p': 3,
            'max_d': 1,
            'max_q': 3,
            'information_criterion': 'aic',
        },
        'ets': {
            'allow_damped': True,
            'information_criterion': 'aicc',
        },
        'holt_winters': {
            'trend': 'add',
            'damped_trend': False,
            'seasonal': 'add',
            'seasonal_periods': 7,
        },
        # Neural network autoregression on lagged returns
        'nnar': {
            'max_lags': 10,
            'hidden_units': None,
            'repeats': 5,
            'epochs': 100,
            'batch_size': 64,
            'learning_rate': 0.001,
            'l2_regularization': 0.0,
            'early_stopping_patience': 10,
            'seed': 42,
        },
        'prophet': {
            'changepoint_prior_scale': 0.05,
            'seasonality_prior_scale': 10.0,
            'weekly_seasonality': True,
            'yearly_seasonality': True,
        },
        'evaluation': {
            'ljung_box_lags': 10,
            'selection_metric': 'MAPE',
        },
        'output': {
            'directory': 'output',
            'formats': ['csv', 'json'],
            'log_file': 'output/run.log',
        },
    }


def _read_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Parse a YAML or JSON file, returning None when it cannot be read."""
    try:
        logger.info(f"Loading configuration from {config_path}")
        with open(config_path, 'r', encoding='utf-8') as f:
            if config_path.suffix.lower() == '.json':
                loaded = json.load(f)
            else:
                loaded = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.warning(
            f"YAML parsing error in {config_path}: {str(e)}. "
            "Falling back to default configuration."
        )
        return None
    except json.JSONDecodeError as e:
        logger.warning(
            f"JSON parsing error in {config_path}: {str(e)}. "
            "Falling back to default configuration."
        )
        return None
    except OSError as e:
        logger.warning(
            f"Error reading configuration from {config_path}: {str(e)}. "
            "Falling back to default configuration."
        )
        return None

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(
            f"Configuration file must contain a mapping, got {type(loaded).__name__}"
        )
    return loaded


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from file and layer it over the defaults.

    If no path is provided, config/model_params.yml is used when present.
    A missing or unparsable file falls back to the defaults; the result is
    always validated.

    Args:
        config_path (str, optional): Path to a YAML or JSON configuration file.

    Returns:
        dict: Complete validated configuration dictionary.

    Raises:
        ConfigurationError: If the resulting configuration is invalid.
    """
    explicit = config_path is not None
    config_path = Path(config_path) if explicit else DEFAULT_CONFIG_PATH

    loaded = None
    if config_path.exists():
        loaded = _read_config_file(config_path)
    elif explicit:
        logger.warning(
            f"Configuration file not found: {config_path}. "
            "Using default configuration."
        )
    else:
        logger.debug(
            f"Default config file not found at {DEFAULT_CONFIG_PATH}. "
            "Using hardcoded defaults."
        )

    if loaded:
        config = merge_config(get_default_config(), loaded)
    else:
        config = get_default_config()
        logger.info("Using default configuration")
        validate_config(config)

    logger.info("Configuration loaded and validated successfully")
    return config


def _require_int(section: Dict[str, Any], key: str, name: str, minimum: int) -> None:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigurationError(
            f"{name} must be an integer >= {minimum}, got {value}",
            parameter_name=name,
            invalid_value=value,
            allowed_range=f"[{minimum}, ∞)",
        )


def _require_number(section: Dict[str, Any], key: str, name: str,
                    low: float, high: float, inclusive: bool = True) -> None:
    value = section.get(key)
    valid = isinstance(value, (int, float)) and not isinstance(value, bool)
    if valid:
        valid = low <= value <= high if inclusive else low < value < high
    if not valid:
        bounds = f"[{low}, {high}]" if inclusive else f"({low}, {high})"
        raise ConfigurationError(
            f"{name} must be a number in {bounds}, got {value}",
            parameter_name=name,
            invalid_value=value,
            allowed_range=bounds,
        )


def _require_choice(section: Dict[str, Any], key: str, name: str, choices) -> None:
    value = section.get(key)
    if value not in choices:
        raise ConfigurationError(
            f"{name} must be one of {choices}, got {value}",
            parameter_name=name,
            invalid_value=value,
            allowed_range=str(choices),
        )


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate configuration schema and parameter ranges.

    Validation Rules:
    - All sections in REQUIRED_SECTIONS present
    - data: ticker or input_file set
    - split.ratio in (0, 1)
    - stationarity.significance in (0, 1)
    - arima max_p, max_q >= 0, max_d in [0, 2], criterion aic|bic
    - ets criterion aic|aicc|bic
    - holt_winters trend/seasonal add|mul|None, seasonal_periods >= 2 or None
    - nnar counts positive, learning_rate in (0, 1), l2 >= 0
    - prophet prior scales positive
    - evaluation.selection_metric a known metric name

    Args:
        config (dict): Configuration dictionary to validate.

    Returns:
        bool: True if configuration is valid.

    Raises:
        ConfigurationError: If validation fails, naming the offending parameter.

    Examples:
        >>> bad_config = get_default_config()
        >>> bad_config['split']['ratio'] = 1.5
        >>> validate_config(bad_config)
        Traceback (most recent call last):
        ...
        ConfigurationError: split.ratio must be a number in (0.0, 1.0), got 1.5
    """
    logger.debug("Validating configuration...")

    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration must be a dict, got {type(config).__name__}")

    for section in REQUIRED_SECTIONS:
        if not isinstance(config.get(section), dict):
            raise ConfigurationError(f"Missing required section: {section}")

    # ===== Data =====
    data = config['data']
    if not data.get('ticker') and not data.get('input_file'):
        raise ConfigurationError(
            "data section needs either ticker or input_file",
            parameter_name="data.ticker",
        )

    # ===== Split / Stationarity =====
    _require_number(config['split'], 'ratio', 'split.ratio', 0.0, 1.0, inclusive=False)
    _require_number(config['stationarity'], 'significance', 'stationarity.significance',
                    0.0, 1.0, inclusive=False)

    # ===== ARIMA =====
    arima = config['arima']
    _require_int(arima, 'max_p', 'arima.max_p', 0)
    _require_int(arima, 'max_q', 'arima.max_q', 0)
    _require_int(arima, 'max_d', 'arima.max_d', 0)
    if arima['max_d'] > 2:
        raise ConfigurationError(
            f"arima.max_d must not exceed 2, got {arima['max_d']}",
            parameter_name='arima.max_d',
            invalid_value=arima['max_d'],
            allowed_range="[0, 2]",
        )
    _require_choice(arima, 'information_criterion', 'arima.information_criterion', ['aic', 'bic'])

    # ===== ETS =====
    ets = config['ets']
    _require_choice(ets, 'information_criterion', 'ets.information_criterion', ['aic', 'aicc', 'bic'])
    _require_choice(ets, 'allow_damped', 'ets.allow_damped', [True, False])

    # ===== Holt-Winters =====
    hw = config['holt_winters']
    _require_choice(hw, 'trend', 'holt_winters.trend', ['add', 'mul', None])
    _require_choice(hw, 'seasonal', 'holt_winters.seasonal', ['add', 'mul', None])
    _require_choice(hw, 'damped_trend', 'holt_winters.damped_trend', [True, False])
    if hw.get('seasonal') is not None:
        _require_int(hw, 'seasonal_periods', 'holt_winters.seasonal_periods', 2)

    # ===== NNAR =====
    nnar = config['nnar']
    for key in ['max_lags', 'repeats', 'epochs', 'batch_size', 'early_stopping_patience']:
        _require_int(nnar, key, f'nnar.{key}', 1)
    if nnar.get('hidden_units') is not None:
        _require_int(nnar, 'hidden_units', 'nnar.hidden_units', 1)
    _require_number(nnar, 'learning_rate', 'nnar.learning_rate', 0.0, 1.0, inclusive=False)
    _require_number(nnar, 'l2_regularization', 'nnar.l2_regularization', 0.0, float('inf'))
    _require_int(nnar, 'seed', 'nnar.seed', 0)

    # ===== Prophet =====
    prophet = config['prophet']
    _require_number(prophet, 'changepoint_prior_scale', 'prophet.changepoint_prior_scale',
                    0.0, float('inf'), inclusive=False)
    _require_number(prophet, 'seasonality_prior_scale', 'prophet.seasonality_prior_scale',
                    0.0, float('inf'), inclusive=False)

    # ===== Evaluation =====
    evaluation = config['evaluation']
    _require_int(evaluation, 'ljung_box_lags', 'evaluation.ljung_box_lags', 1)
    _require_choice(evaluation, 'selection_metric', 'evaluation.selection_metric', SELECTION_METRICS)

    # ===== Output =====
    output = config['output']
    formats = output.get('formats') or []
    unknown = [fmt for fmt in formats if fmt not in ('csv', 'json')]
    if unknown:
        raise ConfigurationError(
            f"output.formats supports csv and json, got {unknown}",
            parameter_name='output.formats',
            invalid_value=unknown,
        )

    logger.debug(
        f"Config summary: split ratio={config['split']['ratio']}, "
        f"ARIMA p≤{arima['max_p']}, d≤{arima['max_d']}, q≤{arima['max_q']}, "
        f"NNAR repeats={nnar['repeats']}, HW seasonal_periods={hw.get('seasonal_periods')}"
    )
    return True


def merge_config(
    base_config: Dict[str, Any],
    overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Merge configuration overrides into base configuration.

    Deep merge: nested dictionaries are merged key by key, every other value
    replaces the base value. The base is not modified. The merged result is
    validated before it is returned.

    Args:
        base_config (dict): Base configuration dictionary.
        overrides (dict): Override parameters, e.g. {'nnar': {'repeats': 20}}

    Returns:
        dict: Merged configuration with overrides applied.

    Raises:
        ConfigurationError: If merged configuration fails validation.

    Examples:
        >>> merged = merge_config(get_default_config(), {'nnar': {'repeats': 20}})
        >>> merged['nnar']['repeats']
        20
        >>> merged['nnar']['epochs']
        100
    """
    merged = copy.deepcopy(base_config)

    def deep_merge(target: Dict, source: Dict, path: str = "") -> None:
        for key, value in source.items():
            current_path = f"{path}.{key}" if path else key

            if key not in target:
                logger.warning(f"Override key not in base config: {current_path}")
                target[key] = copy.deepcopy(value)
            elif isinstance(value, dict) and isinstance(target.get(key), dict):
                deep_merge(target[key], value, current_path)
            else:
                old_value = target[key]
                target[key] = copy.deepcopy(value)
                if old_value != value:
                    logger.info(f"Override config: {current_path} = {value} (was {old_value})")

    if overrides:
        deep_merge(merged, overrides)

    try:
        validate_config(merged)
    except ConfigurationError as e:
        logger.error(f"Merged configuration validation failed: {str(e)}")
        raise

    return merged


def config_to_dict(config: Dict[str, Any]) -> Dict[str, str]:
    """
    Convert nested configuration to a flat dictionary for display.

    Nested keys become dot-separated ('nnar.repeats'); values are rendered as
    strings, booleans lower-cased.

    Examples:
        >>> flat = config_to_dict(get_default_config())
        >>> flat['split.ratio']
        '0.8'
        >>> flat['prophet.weekly_seasonality']
        'true'
    """
    flat = {}

    def flatten(d: Dict, parent_key: str = "") -> None:
        for key, value in d.items():
            new_key = f"{parent_key}.{key}" if parent_key else key
            if isinstance(value, dict):
                flatten(value, new_key)
            elif isinstance(value, bool):
                flat[new_key] = str(value).lower()
            else:
                flat[new_key] = str(value)

    flatten(config)
    return flat
