"""
CLI Entry Point for the Bitcoin Log-Return Forecasting Report

Loads daily prices (from a CSV/JSON file or downloaded by ticker), runs the
forecast comparison of ARIMA, ETS, Holt-Winters, NNAR, Prophet and their
equal-weight combination, prints the report and exports it.

Usage:
    python forecaster.py --ticker BTC-USD --start 2014-09-17 --end 2024-01-01
    python forecaster.py --input data/btc_prices.csv --output results
    python forecaster.py --input data/btc_prices.csv --config config/model_params.yml

Exit codes:
    0: every model and the combination were evaluated
    1: the run halted, or at least one model failed
"""

import argparse
import sys
from pathlib import Path

from btc_forecast.config_loader import config_to_dict, load_config, merge_config
from btc_forecast.data_loader import load_price_series
from btc_forecast.exceptions import ConfigurationError, FileIOError, ForecastPipelineError
from btc_forecast.logger_config import configure_logging, get_logger, log_exception
from btc_forecast.output_manager import export_to_csv, export_to_json, format_report_summary
from btc_forecast.pipeline import run_forecast_report


logger = get_logger(__name__)

LOG_FILE_NAME = 'run.log'


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure CLI argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        description='Bitcoin Log-Return Forecast Comparison',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Download prices and run the report
  python forecaster.py --ticker BTC-USD --start 2014-09-17

  # Use a local CSV and write the report to results/
  python forecaster.py --input data/btc_prices.csv --output results

  # With custom configuration
  python forecaster.py --input data/btc_prices.csv --config config/custom_params.yml
        """
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        '--input',
        type=str,
        default=None,
        help='Path to input file (CSV or JSON) containing daily prices'
    )
    source.add_argument(
        '--ticker',
        type=str,
        default=None,
        help='Ticker to download when no input file is given (default from config: BTC-USD)'
    )

    parser.add_argument('--start', type=str, default=None, help='First date to download (YYYY-MM-DD)')
    parser.add_argument('--end', type=str, default=None, help='Last date to download (YYYY-MM-DD)')

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to configuration file (YAML or JSON). Uses defaults if not specified'
    )
    parser.add_argument(
        '--output',
        type=str,
        default=None,
        help='Output directory for report.csv/report.json (default from config: output). '
             'Set to "stdout" to only print the summary'
    )
    parser.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging verbosity (default: INFO)'
    )

    return parser


def validate_arguments(args: argparse.Namespace) -> None:
    """
    Validate CLI arguments.

    Raises:
        FileNotFoundError: If the input or configuration file does not exist
        ValueError: If the input file is not CSV or JSON
    """
    if args.input is not None:
        input_path = Path(args.input)
        if not input_path.exists():
            error_msg = f"Input file not found: {args.input}"
            logger.error(error_msg)
            raise FileNotFoundError(error_msg)

        if input_path.suffix.lower() not in ['.csv', '.json']:
            error_msg = f"Input file must be CSV or JSON, got: {input_path.suffix}"
            logger.error(error_msg)
            raise ValueError(error_msg)

    if args.config is not None and not Path(args.config).exists():
        error_msg = f"Configuration file not found: {args.config}"
        logger.error(error_msg)
        raise FileNotFoundError(error_msg)

    logger.info("All CLI arguments validated successfully")


def build_overrides(args: argparse.Namespace) -> dict:
    """Configuration overrides from the command line."""
    data = {}
    if args.input is not None:
        data['input_file'] = args.input
    if args.ticker is not None:
        data['ticker'] = args.ticker
        data['input_file'] = None
    if args.start is not None:
        data['start'] = args.start
    if args.end is not None:
        data['end'] = args.end

    overrides = {'data': data} if data else {}
    if args.output is not None and args.output != 'stdout':
        # the run log follows the report into the chosen directory
        overrides['output'] = {
            'directory': args.output,
            'log_file': str(Path(args.output) / LOG_FILE_NAME),
        }
    return overrides


def export_report(result: dict, output_config: dict) -> list:
    """Write the report in every configured format; returns the written paths."""
    directory = Path(output_config.get('directory', 'output'))
    exporters = {'csv': export_to_csv, 'json': export_to_json}

    written = []
    for fmt in output_config.get('formats', ['csv', 'json']):
        path = directory / f"report.{fmt}"
        exporters[fmt](str(path), result)
        written.append(path)
    return written


def main(argv=None) -> int:
    """
    Main entry point for the CLI application.

    Parses arguments, loads configuration and prices, runs the report,
    prints the summary and exports results.
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        validate_arguments(args)

        config = load_config(config_path=args.config)
        overrides = build_overrides(args)
        if overrides:
            config = merge_config(config, overrides)

        configure_logging(log_level=args.log_level, log_file=config['output'].get('log_file'))
        logger.info("Command-line arguments parsed")
        logger.info(f"  Input: {config['data'].get('input_file') or 'download'}")
        logger.info(f"  Ticker: {config['data']['ticker']}")
        logger.info(f"  Config: {args.config if args.config else 'default'}")
        for key, value in config_to_dict(config).items():
            logger.debug(f"  {key} = {value}")

        prices = load_price_series(config['data'])
        result = run_forecast_report(prices, config=config)
        result['ticker'] = config['data']['ticker'] if not config['data'].get('input_file') else None

        print("\n" + format_report_summary(result))

        if args.output == 'stdout':
            logger.info("Output to stdout requested. Summary displayed above.")
        else:
            for path in export_report(result, config['output']):
                print(f"Results saved to: {path}")

        if result['failures']:
            logger.error(f"Report incomplete: {', '.join(result['failures'])} failed")
            return 1
        return 0

    except ForecastPipelineError as e:
        error_msg = f"{e.kind} in stage '{e.stage}': {e.error_message}"
        logger.error(error_msg)
        log_exception(logger, e)
        print(f"ERROR: {error_msg}", file=sys.stderr)
        return 1

    except (ConfigurationError, FileIOError) as e:
        logger.error(f"{type(e).__name__}: {str(e)}")
        print(f"ERROR: {str(e)}", file=sys.stderr)
        return 1

    except FileNotFoundError as e:
        error_msg = f"File Error: {str(e)}"
        logger.error(error_msg)
        print(f"ERROR: {error_msg}", file=sys.stderr)
        return 1

    except ValueError as e:
        error_msg = f"Validation Error: {str(e)}"
        logger.error(error_msg)
        log_exception(logger, e)
        print(f"ERROR: {error_msg}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
