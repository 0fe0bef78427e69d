import asyncio
import enum
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

import structlog

from lambdacost.aggregator import BucketAggregator, timed_query
from lambdacost.errors import UpstreamQueryFailure
from lambdacost.metrics import ReportMetrics
from lambdacost.models import AccountReportRecord, CombinedRecord
from lambdacost.partition import DateBucket
from lambdacost.report_config import ReportConfig
from lambdacost.source.base import CostSource

logger = structlog.get_logger()

R = TypeVar("R")


class ErrorPolicy(enum.Enum):
    # the first upstream failure aborts the whole run
    FAIL_FAST = "fail-fast"
    # a failing bucket is dropped from the report
    SKIP = "skip"


async def run_buckets(
    buckets: "Sequence[DateBucket]",
    work: "Callable[[DateBucket], Awaitable[R]]",
    metrics: "ReportMetrics",
    on_error: "ErrorPolicy" = ErrorPolicy.FAIL_FAST,
    concurrency: "int" = 1,
) -> "list[tuple[DateBucket, R]]":
    """
    runs work for every bucket with at most `concurrency` buckets
    in flight and returns (bucket, result) pairs in bucket order.

    Under FAIL_FAST the first UpstreamQueryFailure propagates
    as soon as it is raised and the buckets still in flight are
    cancelled. Under SKIP the failing bucket is logged and left out.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _one(bucket: "DateBucket") -> "R | UpstreamQueryFailure":
        async with semaphore:
            try:
                return await work(bucket)
            except UpstreamQueryFailure as exc:
                if on_error is ErrorPolicy.FAIL_FAST:
                    logger.error(
                        "bucket_failed",
                        period_start=bucket.start_timestamp,
                        error=str(exc),
                    )
                    raise
                return exc

    if concurrency <= 1:
        # sequential traversal: a bucket's queries are only issued
        # once the previous bucket has been joined
        results = [await _one(bucket) for bucket in buckets]
    else:
        try:
            # the first failure cancels the buckets still in flight
            async with asyncio.TaskGroup() as group:
                tasks = [group.create_task(_one(bucket)) for bucket in buckets]
        except BaseExceptionGroup as group_error:
            failure = _first_failure(group_error)
            if failure is None:
                raise
            raise failure from None
        results = [task.result() for task in tasks]

    kept: "list[tuple[DateBucket, R]]" = []
    for bucket, result in zip(buckets, results, strict=True):
        if isinstance(result, UpstreamQueryFailure):
            logger.warning(
                "bucket_skipped",
                period_start=bucket.start_timestamp,
                error=str(result),
            )
            metrics.inc_bucket("skipped")
            continue

        metrics.inc_bucket("ok")
        kept.append((bucket, result))
    return kept


def _first_failure(
    group_error: "BaseExceptionGroup",
) -> "UpstreamQueryFailure | None":
    for exc in group_error.exceptions:
        if isinstance(exc, UpstreamQueryFailure):
            return exc
    return None


class ReportAssembler:
    """
    ReportAssembler drives the BucketAggregator over every bucket of
    a run and returns the combined records in bucket order.
    """

    def __init__(
        self,
        aggregator: "BucketAggregator",
        metrics: "ReportMetrics",
        on_error: "ErrorPolicy" = ErrorPolicy.FAIL_FAST,
        bucket_concurrency: "int" = 1,
    ) -> "None":
        self._aggregator = aggregator
        self._metrics = metrics
        self._on_error = on_error
        self._concurrency = bucket_concurrency

    async def assemble(
        self,
        buckets: "Sequence[DateBucket]",
        report_config: "ReportConfig",
    ) -> "list[CombinedRecord]":
        started = time.monotonic()
        logger.info(
            "report_assembly_start",
            resource=report_config.resource_name,
            buckets=len(buckets),
        )

        async def _work(bucket: "DateBucket") -> "CombinedRecord":
            return await self._aggregator.aggregate(bucket, report_config)

        kept = await run_buckets(
            buckets, _work, self._metrics, self._on_error, self._concurrency
        )
        records = [record for _, record in kept]

        logger.info(
            "report_assembly_end",
            resource=report_config.resource_name,
            records=len(records),
            elapsed_ms=round((time.monotonic() - started) * 1000),
        )
        return records


def percentage_change(cost: "float", previous_cost: "float") -> "float":
    """
    change relative to the previous bucket, in percent. A zero
    previous cost (including the first bucket) yields 0.
    """
    if previous_cost == 0:
        return 0.0
    return ((cost - previous_cost) / previous_cost) * 100


def with_percentage_change(
    period_costs: "Sequence[tuple[str, float]]",
) -> "list[AccountReportRecord]":
    """
    walks the costs in order, carrying the previous bucket's
    cost one step at a time.
    """
    records: "list[AccountReportRecord]" = []
    previous_cost = 0.0
    for period_start, cost in period_costs:
        records.append(
            AccountReportRecord(
                period_start=period_start,
                cost=cost,
                cost_percentage_change=percentage_change(cost, previous_cost),
            )
        )
        previous_cost = cost
    return records


class AccountReportAssembler:
    """
    AccountReportAssembler queries the unfiltered account cost per
    bucket. Buckets may be fetched concurrently, but the percentage
    change is computed afterwards in strict bucket order.
    """

    def __init__(
        self,
        cost_source: "CostSource",
        metrics: "ReportMetrics",
        query_timeout: "float | None" = None,
        on_error: "ErrorPolicy" = ErrorPolicy.FAIL_FAST,
        bucket_concurrency: "int" = 1,
    ) -> "None":
        self._cost = cost_source
        self._metrics = metrics
        self._timeout = query_timeout
        self._on_error = on_error
        self._concurrency = bucket_concurrency

    async def assemble(
        self,
        buckets: "Sequence[DateBucket]",
    ) -> "list[AccountReportRecord]":
        logger.info("account_report_assembly_start", buckets=len(buckets))

        async def _work(bucket: "DateBucket") -> "float":
            cost = await timed_query(
                "account_cost",
                self._cost.fetch_account_cost(bucket),
                self._metrics,
                self._timeout,
            )
            if cost is None:
                logger.info(
                    "datapoint_missing",
                    source="account_cost",
                    period_start=bucket.start_timestamp,
                )
                self._metrics.inc_missing_datapoint("account_cost")
                return 0.0
            return cost

        kept = await run_buckets(
            buckets, _work, self._metrics, self._on_error, self._concurrency
        )
        records = with_percentage_change(
            [(bucket.start_timestamp, cost) for bucket, cost in kept]
        )

        logger.info("account_report_assembly_end", records=len(records))
        return records
