"""
Neural Network Autoregression Adapter

Feed-forward network on lagged returns, NNAR(p, k): p lagged inputs and one
hidden layer of k units. The lag order p comes from an AR order search on
the training data and k defaults to (p + 1) // 2. Several networks are
trained from different seeds; multi-step forecasts are produced recursively,
feeding the averaged one-step forecast back as the next input.

Functions:
    - select_lag_order: AR order selection by AIC
    - create_lagged_windows: Build (X, y) training pairs
    - build_nnar_network: Construct one Keras network
    - train_network: Train one network with early stopping
"""

from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.ar_model import ar_select_order
from tensorflow import keras
from tensorflow.keras.callbacks import EarlyStopping
from tensorflow.keras.layers import Dense
from tensorflow.keras.optimizers import Adam
from tensorflow.keras.regularizers import l2

from btc_forecast.exceptions import ConfigurationError, ConvergenceError
from btc_forecast.logger_config import get_logger
from btc_forecast.models.base import ForecastAdapter, ModelHandle, fit_quietly
from btc_forecast.timeseries import TimeSeries


logger = get_logger(__name__)


def select_lag_order(values: np.ndarray, max_lags: int = 10) -> int:
    """
    Choose the number of lagged inputs by fitting AR models up to max_lags
    and keeping the order with the lowest AIC. At least one lag is used.
    """
    max_lags = max(1, min(max_lags, len(values) // 3))
    selection, _ = fit_quietly(lambda: ar_select_order(values, maxlag=max_lags, ic='aic', trend='c'))
    lags = selection.ar_lags
    n_lags = int(max(lags)) if lags else 1
    logger.info(f"Selected {n_lags} lagged input(s) (max_lags={max_lags})")
    return n_lags


def create_lagged_windows(values: np.ndarray, n_lags: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build supervised pairs from a 1D series.

    X[i] = values[i : i + n_lags], y[i] = values[i + n_lags]

    Examples:
        >>> X, y = create_lagged_windows(np.arange(6.0), n_lags=2)
        >>> X.shape, y.shape
        ((4, 2), (4,))
    """
    if not isinstance(values, np.ndarray) or values.ndim != 1:
        error_msg = "values must be a 1D numpy array"
        logger.error(error_msg)
        raise ValueError(error_msg)

    if n_lags <= 0:
        error_msg = f"n_lags must be positive, got {n_lags}"
        logger.error(error_msg)
        raise ConfigurationError(error_msg, parameter_name="n_lags",
                                 invalid_value=n_lags, allowed_range="(0, ∞)")

    if len(values) <= n_lags:
        error_msg = f"Series length ({len(values)}) must exceed n_lags ({n_lags})"
        logger.error(error_msg)
        raise ValueError(error_msg)

    windows = np.lib.stride_tricks.sliding_window_view(values, n_lags)[:-1]
    return np.ascontiguousarray(windows, dtype=np.float32), values[n_lags:].astype(np.float32)


def build_nnar_network(n_lags: int, hidden_units: int, learning_rate: float = 0.001,
                       l2_regularization: float = 0.0) -> keras.Model:
    """
    One hidden sigmoid layer and a linear output unit, trained on MSE.
    """
    model = keras.Sequential([
        keras.Input(shape=(n_lags,)),
        Dense(hidden_units, activation='sigmoid', kernel_regularizer=l2(l2_regularization)),
        Dense(1, activation='linear'),
    ])
    model.compile(optimizer=Adam(learning_rate=learning_rate), loss='mse')
    return model


def train_network(model: keras.Model, X: np.ndarray, y: np.ndarray,
                  config: Dict[str, Any]) -> keras.Model:
    """
    Fit one network with early stopping.

    The last 20% of the windows are held out for early stopping when there
    are at least 10 of them; otherwise training loss is monitored.
    """
    batch_size = min(config.get('batch_size', 64), len(X))
    use_validation = len(X) >= 10
    early_stop = EarlyStopping(
        monitor='val_loss' if use_validation else 'loss',
        patience=config.get('early_stopping_patience', 10),
        restore_best_weights=True,
    )

    history = model.fit(
        X, y,
        batch_size=batch_size,
        epochs=config.get('epochs', 100),
        validation_split=0.2 if use_validation else 0.0,
        callbacks=[early_stop],
        shuffle=True,
        verbose=0,
    )

    losses = history.history['loss']
    logger.debug(f"Network trained for {len(losses)} epochs, final loss={losses[-1]:.6f}")
    return model


def _ensemble_step(networks: List[keras.Model], inputs: np.ndarray) -> np.ndarray:
    outputs = [network(inputs, training=False).numpy().reshape(-1) for network in networks]
    return np.mean(outputs, axis=0)


class NnarAdapter(ForecastAdapter):
    """Averaged feed-forward neural network autoregression."""

    model_id = "NNAR"
    min_train_size = 10

    def _fit(self, train: TimeSeries) -> Tuple[Any, np.ndarray, Dict[str, Any]]:
        values = train.values
        center = float(values.mean())
        scale = float(values.std())
        if not np.isfinite(scale) or scale == 0.0:
            scale = 1.0
        scaled = (values - center) / scale

        n_lags = select_lag_order(scaled, self.config.get('max_lags', 10))
        hidden_units = self.config.get('hidden_units') or max(1, (n_lags + 1) // 2)
        repeats = self.config.get('repeats', 5)
        seed = self.config.get('seed', 42)

        X, y = create_lagged_windows(scaled, n_lags)
        logger.info(
            f"Training NNAR({n_lags},{hidden_units}) x{repeats} on {len(X)} windows"
        )

        networks = []
        for repeat in range(repeats):
            keras.utils.set_random_seed(seed + repeat)
            network = build_nnar_network(
                n_lags,
                hidden_units,
                learning_rate=self.config.get('learning_rate', 0.001),
                l2_regularization=self.config.get('l2_regularization', 0.0),
            )
            network = train_network(network, X, y, self.config)

            if not all(np.all(np.isfinite(w)) for w in network.get_weights()):
                error_msg = f"NNAR network {repeat + 1}/{repeats} diverged (non-finite weights)"
                logger.error(error_msg)
                raise ConvergenceError(error_msg, model_type=self.model_id,
                                       parameters={'n_lags': n_lags, 'hidden_units': hidden_units})
            networks.append(network)

        fitted = np.full(len(values), np.nan)
        fitted[n_lags:] = _ensemble_step(networks, X) * scale + center

        state = {
            'networks': networks,
            'center': center,
            'scale': scale,
            'n_lags': n_lags,
            'last_window': scaled[-n_lags:].astype(np.float32),
        }
        params = {
            'n_lags': n_lags,
            'hidden_units': hidden_units,
            'repeats': repeats,
            'label': f"NNAR({n_lags},{hidden_units})",
        }
        return state, fitted, params

    def _predict(self, handle: ModelHandle, horizon: int, index: pd.DatetimeIndex):
        state = handle.model
        window = state['last_window'].copy()
        forecasts = np.empty(horizon)

        for step in range(horizon):
            next_value = float(_ensemble_step(state['networks'], window.reshape(1, -1))[0])
            forecasts[step] = next_value
            window = np.append(window[1:], np.float32(next_value))

        return forecasts * state['scale'] + state['center'], None, None
