"""
Custom Exception Classes for the Bitcoin Return Forecasting Report

Implements the exception hierarchy used across the evaluation pipeline. Every
pipeline error derives from ForecastPipelineError and carries the name of the
stage that raised it, so the report can surface both the error kind and where
it happened.

Taxonomy:
    - InvalidInputError: malformed price data
    - InsufficientDataError: too few points to split
    - ConvergenceError: a model's estimation procedure failed
    - InvalidHorizonError: non-positive forecast horizon
    - AlignmentError: forecast/test length or timestamp mismatch
    - ConfigurationError: invalid configuration parameters
    - FileIOError: report export problems
"""


class ForecastPipelineError(Exception):
    """
    Base class for all errors raised by the forecasting pipeline.

    The stage attribute is filled in by the raise site when it is known, or
    by the pipeline's stage wrapper otherwise.
    """

    def __init__(self, error_message, stage=None):
        super().__init__(error_message)
        self.error_message = error_message
        self.stage = stage

    @property
    def kind(self):
        return type(self).__name__

    def __str__(self):
        msg = self.error_message
        if self.stage:
            msg += f"\n  Stage: {self.stage}"
        return msg


class InvalidInputError(ForecastPipelineError):
    """
    Raised when price data is malformed.

    Triggered by:
    - Fewer than 2 price points
    - Zero or negative prices (log undefined)
    - Non-finite values or unordered timestamps in a TimeSeries

    Example: "Price series contains 3 non-positive values"
    """

    def __init__(self, error_message, stage=None, data_shape=None):
        """
        Initialize InvalidInputError.

        Args:
            error_message (str): Description of the validation error
            stage (str, optional): Pipeline stage that rejected the data
            data_shape (tuple, optional): Shape of the offending data
        """
        super().__init__(error_message, stage=stage)
        self.data_shape = data_shape

    def __str__(self):
        msg = f"Invalid Input Error: {super().__str__()}"
        if self.data_shape:
            msg += f"\n  Data shape: {self.data_shape}"
        return msg


class InsufficientDataError(ForecastPipelineError):
    """
    Raised when a series is too short for the requested operation.

    Example: "Split ratio 0.8 on 1 observation leaves an empty test partition"
    """

    def __init__(self, error_message, stage=None, n_observations=None, required=None):
        super().__init__(error_message, stage=stage)
        self.n_observations = n_observations
        self.required = required

    def __str__(self):
        msg = f"Insufficient Data Error: {super().__str__()}"
        if self.n_observations is not None:
            msg += f"\n  Observations: {self.n_observations}"
        if self.required is not None:
            msg += f"\n  Required: {self.required}"
        return msg


class ConvergenceError(ForecastPipelineError):
    """
    Raised when a model's estimation procedure does not converge.

    Triggered by:
    - ARIMA/ETS/Holt-Winters optimizer reporting non-convergence
    - Library exceptions during fitting (singular matrices, Stan failures)
    - Neural network training producing non-finite weights

    Example: "ARIMA(2, 0, 1) failed to converge"
    """

    def __init__(self, error_message, stage=None, model_type=None, parameters=None):
        """
        Initialize ConvergenceError.

        Args:
            error_message (str): Description of convergence failure
            stage (str, optional): Pipeline stage
            model_type (str, optional): Type of model (e.g., "ARIMA", "NNAR")
            parameters (tuple/dict, optional): Failed model parameters
        """
        super().__init__(error_message, stage=stage)
        self.model_type = model_type
        self.parameters = parameters

    def __str__(self):
        msg = f"Convergence Error ({self.model_type}): {super().__str__()}"
        if self.parameters:
            msg += f"\n  Parameters: {self.parameters}"
        return msg


class InvalidHorizonError(ForecastPipelineError):
    """Raised when a non-positive forecast horizon is requested."""

    def __init__(self, error_message, stage=None, horizon=None):
        super().__init__(error_message, stage=stage)
        self.horizon = horizon

    def __str__(self):
        msg = f"Invalid Horizon Error: {super().__str__()}"
        if self.horizon is not None:
            msg += f"\n  Horizon: {self.horizon}"
        return msg


class AlignmentError(ForecastPipelineError):
    """
    Raised when series that must line up one-to-one do not.

    Triggered by:
    - Forecasts of different lengths or timestamps passed to the combiner
    - Fewer forecasts than expected reaching the combiner
    - Forecast and test series of different lengths in the evaluator
    - An adapter producing more or fewer points than the horizon

    Example: "Forecast 'Prophet' has 3000 points, expected 730"
    """

    def __init__(self, error_message, stage=None, expected=None, actual=None):
        super().__init__(error_message, stage=stage)
        self.expected = expected
        self.actual = actual

    def __str__(self):
        msg = f"Alignment Error: {super().__str__()}"
        if self.expected is not None:
            msg += f"\n  Expected: {self.expected}"
        if self.actual is not None:
            msg += f"\n  Actual: {self.actual}"
        return msg


class ConfigurationError(Exception):
    """
    Raised when invalid configuration parameters are provided.

    Triggered by:
    - Parameter values out of allowed range
    - Missing required configuration sections

    Example: "split.ratio must be a number in (0.0, 1.0), got 1.2"
    """

    def __init__(self, error_message, parameter_name=None, invalid_value=None, allowed_range=None):
        super().__init__(error_message)
        self.error_message = error_message
        self.parameter_name = parameter_name
        self.invalid_value = invalid_value
        self.allowed_range = allowed_range

    def __str__(self):
        msg = f"Configuration Error: {self.error_message}"
        if self.parameter_name:
            msg += f"\n  Parameter: {self.parameter_name}"
        if self.invalid_value is not None:
            msg += f"\n  Invalid value: {self.invalid_value}"
        if self.allowed_range:
            msg += f"\n  Allowed range: {self.allowed_range}"
        return msg


class FileIOError(Exception):
    """
    Raised when report files cannot be read or written.

    Example: "Cannot write to output/report.csv - permission denied"
    """

    def __init__(self, error_message, file_path=None, operation=None):
        super().__init__(error_message)
        self.error_message = error_message
        self.file_path = file_path
        self.operation = operation

    def __str__(self):
        msg = f"File I/O Error ({self.operation}): {self.error_message}"
        if self.file_path:
            msg += f"\n  File: {self.file_path}"
        return msg
