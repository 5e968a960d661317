import argparse
import io
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import jsonschema

from .accumulator import LineProtocolAccumulator
from .config import LotusConfig
from .core import Collector, bundled_schema_path, validate_output
from .types import ConfigurationError, ConversionError

LOG_FORMAT = '%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s'
LOG_DATEFMT = '%Y-%m-%dT%H:%M:%S%z'


def setup_logging(debug=False, level: str = "INFO"):
    """Configure logging on stderr; stdout is reserved for metrics."""
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear any existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    root_logger.addHandler(console)

    log = logging.getLogger("lotus-metrics")
    log.setLevel(log_level)
    return log


def add_connection_args(parser: argparse.ArgumentParser) -> None:
    """Options shared by the CLI and the daemon. Unset options fall back to LOTUS_* env vars."""
    g = parser.add_argument_group("connection")
    g.add_argument("--daemon-addr", help="Lotus daemon host:port (env LOTUS_DAEMON_ADDR, default 127.0.0.1:1234).")
    g.add_argument("--daemon-token", help="Lotus daemon API token (env LOTUS_DAEMON_TOKEN).")
    g.add_argument("--daemon-api-version", choices=["v0", "v1"],
                   help="Lotus daemon API version (env LOTUS_DAEMON_API_VERSION, default v0).")
    g.add_argument("--miner-addr", help="Lotus miner host:port (env LOTUS_MINER_ADDR, default 127.0.0.1:2345).")
    g.add_argument("--miner-token", help="Lotus miner API token (env LOTUS_MINER_TOKEN).")
    g.add_argument("--no-daemon", action="store_const", const=False, dest="daemon_enabled",
                   help="Don't poll the daemon.")
    g.add_argument("--no-miner", action="store_const", const=False, dest="miner_enabled",
                   help="Don't poll the miner.")
    g.add_argument("--timeout", type=float, help="Per-call RPC timeout in seconds (default 5).")
    g.add_argument("--storage-concurrency", type=int,
                   help="Parallel storage stat/info calls (default 8).")
    g.add_argument("--cycle-timeout", type=float,
                   help="Give up on a fetch after this many seconds (default: no limit).")


def config_from_args(args: argparse.Namespace) -> LotusConfig:
    return LotusConfig.from_env(
        daemon_addr=args.daemon_addr,
        daemon_token=args.daemon_token,
        daemon_api_version=args.daemon_api_version,
        daemon_enabled=args.daemon_enabled,
        miner_addr=args.miner_addr,
        miner_token=args.miner_token,
        miner_enabled=args.miner_enabled,
        timeout=args.timeout,
        storage_concurrency=args.storage_concurrency,
        cycle_timeout=args.cycle_timeout,
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="lotus-metrics",
        description="Poll a Lotus daemon and miner and print metrics."
    )
    subparsers = parser.add_subparsers(dest="cmd", required=True)

    collect_parser = subparsers.add_parser(
        "collect",
        help="Run one polling cycle and output the metrics."
    )
    add_connection_args(collect_parser)
    collect_parser.add_argument(
        "--format", "-f",
        choices=["influx", "json"],
        default="influx",
        help="Output format: InfluxDB line protocol (default) or JSON."
    )
    collect_parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout).",
        type=Path,
        default=None
    )
    collect_parser.add_argument(
        "--schema",
        help="Path to JSON Schema file for --format json (defaults to bundled schema).",
        default=None
    )
    collect_parser.add_argument(
        "--no-validate",
        action="store_false",
        dest="validate",
        help="Disable schema validation of JSON output."
    )
    collect_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging."
    )
    collect_parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: WARNING, ignored if --debug is used)."
    )
    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    parsed_args = parser.parse_args(args)

    log = setup_logging(debug=parsed_args.debug, level=parsed_args.log_level)
    log.debug("CLI main() started")
    if parsed_args.cmd != "collect":
        return 0

    start_time = datetime.now(timezone.utc)
    try:
        config = config_from_args(parsed_args)
    except ConfigurationError as e:
        log.error(f"Invalid configuration: {e}")
        return 2
    log.debug(f"Daemon: {config.daemon_url if config.daemon_enabled else 'disabled'}, "
              f"miner: {config.miner_url if config.miner_enabled else 'disabled'}")

    buf = io.StringIO()
    try:
        result = Collector.from_config(config).gather(LineProtocolAccumulator(buf))
    except ConversionError as e:
        log.error(f"Error: {e}", exc_info=parsed_args.debug)
        return 1

    if parsed_args.format == "json":
        data = result.to_dict()
        if parsed_args.validate:
            schema_path = parsed_args.schema or bundled_schema_path()
            log.debug(f"Validating output against {schema_path}")
            try:
                validate_output(data, schema_path)
            except (jsonschema.ValidationError, jsonschema.SchemaError) as e:
                log.error(f"Output failed schema validation: {e.message}", exc_info=parsed_args.debug)
                return 1
            except (OSError, ValueError) as e:
                log.error(f"Can't load schema {schema_path}: {e}", exc_info=parsed_args.debug)
                return 1
        output = json.dumps(data, indent=2)
    else:
        output = buf.getvalue().rstrip("\n")

    if parsed_args.output:
        try:
            parsed_args.output.write_text(output + "\n")
            log.info(f"Results written to {parsed_args.output}")
        except OSError as e:
            log.error(f"Error writing to {parsed_args.output}: {e}", exc_info=parsed_args.debug)
            return 1
    elif output:
        print(output)

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    log.debug(f"Collection completed in {duration:.2f} seconds")
    return 1 if result.metadata.status == "failed" else 0


if __name__ == "__main__":
    sys.exit(main())
