"""
Unit Tests for Configuration System Module (btc_forecast/config_loader.py)

Tests configuration loading, validation, and merging.
"""

import json

import pytest
import yaml

from btc_forecast.config_loader import (
    REQUIRED_SECTIONS,
    config_to_dict,
    get_default_config,
    load_config,
    merge_config,
    validate_config,
)
from btc_forecast.exceptions import ConfigurationError


class TestGetDefaultConfig:
    """Test get_default_config() function."""

    def test_default_config_structure(self):
        config = get_default_config()
        for section in REQUIRED_SECTIONS:
            assert section in config, f"Missing section: {section}"

    def test_data_defaults(self):
        data = get_default_config()['data']
        assert data['ticker'] == 'BTC-USD'
        assert data['start'] == '2014-09-17'
        assert data['input_file'] is None

    def test_split_and_evaluation_defaults(self):
        config = get_default_config()
        assert config['split']['ratio'] == 0.8
        assert config['stationarity']['significance'] == 0.05
        assert config['evaluation']['selection_metric'] == 'MAPE'

    def test_model_defaults(self):
        config = get_default_config()
        assert config['arima']['information_criterion'] == 'aic'
        assert config['ets']['information_criterion'] == 'aicc'
        assert config['holt_winters']['seasonal_periods'] == 7
        assert config['nnar']['hidden_units'] is None
        assert config['prophet']['weekly_seasonality'] is True

    def test_returns_fresh_copy(self):
        first = get_default_config()
        first['split']['ratio'] = 0.5
        assert get_default_config()['split']['ratio'] == 0.8

    def test_default_config_is_valid(self):
        assert validate_config(get_default_config())


class TestValidateConfig:
    """Test validate_config() function."""

    def test_missing_section(self):
        config = get_default_config()
        del config['nnar']
        with pytest.raises(ConfigurationError, match="nnar"):
            validate_config(config)

    @pytest.mark.parametrize("ratio", [0.0, 1.0, 1.5, "0.8"])
    def test_split_ratio_range(self, ratio):
        config = get_default_config()
        config['split']['ratio'] = ratio
        with pytest.raises(ConfigurationError) as exc_info:
            validate_config(config)
        assert exc_info.value.parameter_name == 'split.ratio'

    def test_arima_max_d_limit(self):
        config = get_default_config()
        config['arima']['max_d'] = 3
        with pytest.raises(ConfigurationError):
            validate_config(config)

    def test_arima_criterion(self):
        config = get_default_config()
        config['arima']['information_criterion'] = 'hqic'
        with pytest.raises(ConfigurationError):
            validate_config(config)

    def test_holt_winters_without_seasonality(self):
        config = get_default_config()
        config['holt_winters']['seasonal'] = None
        config['holt_winters']['seasonal_periods'] = None
        assert validate_config(config)

    def test_nnar_repeats_positive(self):
        config = get_default_config()
        config['nnar']['repeats'] = 0
        with pytest.raises(ConfigurationError):
            validate_config(config)

    def test_nnar_hidden_units_integer(self):
        config = get_default_config()
        config['nnar']['hidden_units'] = 2.5
        with pytest.raises(ConfigurationError):
            validate_config(config)

    def test_unknown_selection_metric(self):
        config = get_default_config()
        config['evaluation']['selection_metric'] = 'R2'
        with pytest.raises(ConfigurationError):
            validate_config(config)

    def test_unknown_output_format(self):
        config = get_default_config()
        config['output']['formats'] = ['csv', 'parquet']
        with pytest.raises(ConfigurationError):
            validate_config(config)

    def test_needs_a_data_source(self):
        config = get_default_config()
        config['data']['ticker'] = None
        with pytest.raises(ConfigurationError):
            validate_config(config)


class TestLoadConfig:
    """Test load_config() function."""

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "params.yml"
        path.write_text(yaml.safe_dump({'split': {'ratio': 0.7}, 'nnar': {'repeats': 20}}))

        config = load_config(str(path))

        assert config['split']['ratio'] == 0.7
        assert config['nnar']['repeats'] == 20
        assert config['nnar']['epochs'] == 100

    def test_load_from_json(self, tmp_path):
        path = tmp_path / "params.json"
        path.write_text(json.dumps({'evaluation': {'selection_metric': 'RMSE'}}))
        assert load_config(str(path))['evaluation']['selection_metric'] == 'RMSE'

    def test_missing_file_fallback(self, tmp_path):
        config = load_config(str(tmp_path / "missing.yml"))
        assert config == get_default_config()

    def test_malformed_yaml_fallback(self, tmp_path):
        path = tmp_path / "broken.yml"
        path.write_text("split: [unclosed\n")
        assert load_config(str(path)) == get_default_config()

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert load_config(str(path)) == get_default_config()

    def test_loaded_config_validated(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text(yaml.safe_dump({'split': {'ratio': 2.0}}))
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))


class TestMergeConfig:
    """Test merge_config() function."""

    def test_deep_merge(self):
        merged = merge_config(get_default_config(), {'prophet': {'yearly_seasonality': False}})
        assert merged['prophet']['yearly_seasonality'] is False
        assert merged['prophet']['weekly_seasonality'] is True

    def test_merge_preserves_base(self):
        base = get_default_config()
        merge_config(base, {'arima': {'max_p': 1}})
        assert base['arima']['max_p'] == 3

    def test_merge_validates_result(self):
        with pytest.raises(ConfigurationError):
            merge_config(get_default_config(), {'nnar': {'learning_rate': 5.0}})

    def test_empty_overrides(self):
        assert merge_config(get_default_config(), {}) == get_default_config()


class TestConfigToDict:
    """Test config_to_dict() function."""

    def test_flatten_config(self):
        flat = config_to_dict(get_default_config())
        assert flat['split.ratio'] == '0.8'
        assert flat['data.ticker'] == 'BTC-USD'

    def test_boolean_conversion(self):
        flat = config_to_dict(get_default_config())
        assert flat['prophet.weekly_seasonality'] == 'true'
        assert flat['holt_winters.damped_trend'] == 'false'

    def test_all_leaves_present(self):
        flat = config_to_dict(get_default_config())
        assert 'nnar.early_stopping_patience' in flat
        assert 'output.formats' in flat
