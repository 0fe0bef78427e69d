import asyncio

import structlog
from prometheus_client import CollectorRegistry

from lambdacost.cli import parse_args
from lambdacost.config import Config
from lambdacost.errors import ReportError
from lambdacost.logging import setup_logging
from lambdacost.metrics import ReportMetrics
from lambdacost.runner import ReportRunner

logger = structlog.get_logger()


async def run_command(runner: "ReportRunner", config: "Config") -> "None":
    if config.command == "create-report":
        await runner.create_report(config.resource_name)
    elif config.command == "create-reports":
        await runner.create_reports()
    elif config.command == "create-report-account":
        await runner.create_report_account()
    elif config.command == "upload-report":
        await runner.upload_report(config.resource_name)
    elif config.command == "upload-reports":
        await runner.upload_reports()
    elif config.command == "upload-report-account":
        await runner.upload_report_account()
    else:
        raise ReportError(f"Unknown command {config.command}")


def main(argv: "list[str] | None" = None) -> "None":
    config = parse_args(argv)
    setup_logging(config.log_level, config.log_json)

    metrics = ReportMetrics(CollectorRegistry())
    runner = ReportRunner(config, metrics)

    logger.info(
        "run_start",
        command=config.command,
        start_date=config.start_date,
        end_date=config.end_date,
    )
    try:
        asyncio.run(run_command(runner, config))
    except ReportError as exc:
        logger.exception("run_failed", command=config.command)
        raise SystemExit(f"lambdacost: {exc}") from exc
    finally:
        if config.pushgateway:
            try:
                metrics.push(config.pushgateway)
            except OSError:
                logger.exception("metrics_push_failed", gateway=config.pushgateway)

    logger.info("run_complete", command=config.command)


if __name__ == "__main__":
    main()
