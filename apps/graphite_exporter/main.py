"""Graphite exporter service main entry point.

This service registers process runtime metrics and reports them to a
Graphite server once per flush interval.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from core.config import Config, load_config
from core.logging import setup_console_logging, setup_json_logging
from telemetry.graphite import GraphiteExporter
from telemetry.registry import MetricRegistry
from telemetry.runtime import register_runtime_metrics

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(description="Graphite metrics exporter")
    parser.add_argument(
        "--config-root",
        default=".",
        help="Directory containing config/ (defaults to current working directory)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Flush a single time and exit (non-zero exit code on connection failure)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override logging.level from config",
    )
    return parser


def configure_logging(config: Config, level_override: str | None = None) -> None:
    """Install structlog handlers according to the logging config."""
    level = level_override or config.logging.level
    if config.logging.format == "json" and config.logging.log_dir is not None:
        setup_json_logging(str(config.logging.log_dir), level)
    else:
        setup_console_logging(level)


async def run_exporter(config: Config, registry: MetricRegistry, once: bool = False) -> int:
    """Run the Graphite exporter.

    Args:
        config: Loaded service configuration
        registry: Registry to export
        once: Flush a single time instead of looping

    Returns:
        Exit code
    """
    exporter = GraphiteExporter(config.graphite.to_export_config(registry))

    if once:
        result = await exporter.once()
        if not result.ok:
            logger.error(
                "graphite_exporter_flush_failed",
                extra={"error": str(result.error)},
            )
            return 1
        logger.info(
            "graphite_exporter_flushed",
            extra={"metrics": result.metrics, "lines": result.lines},
        )
        return 0

    logger.info(
        "graphite_exporter_ready",
        extra={"host": config.graphite.host, "port": config.graphite.port},
    )
    await exporter.run()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv: Command line arguments

    Returns:
        Exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config_root)
    configure_logging(config, args.log_level)

    registry = MetricRegistry()
    register_runtime_metrics(registry, prefix=config.app.name)

    try:
        return asyncio.run(run_exporter(config, registry, once=args.once))
    except KeyboardInterrupt:
        logger.info("graphite_exporter_shutdown")
        return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
