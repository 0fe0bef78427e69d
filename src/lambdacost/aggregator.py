import asyncio
import enum
import math
import time
from collections.abc import Awaitable

import structlog

from lambdacost.errors import UpstreamQueryFailure
from lambdacost.metrics import ReportMetrics
from lambdacost.models import CombinedRecord, CostSample, UsageSample
from lambdacost.partition import DateBucket
from lambdacost.report_config import ReportConfig
from lambdacost.source.base import CostSource, UsageMetricSource

logger = structlog.get_logger()

REQUESTS_SCALE = 1e8


class ZeroInvocationPolicy(enum.Enum):
    # keep IEEE division results: inf, -inf or nan
    PRESERVE = "preserve"
    # report the ratio as missing
    NULL = "null"


def cost_per_100m(
    cost: "float",
    invocations: "float",
    policy: "ZeroInvocationPolicy" = ZeroInvocationPolicy.PRESERVE,
) -> "float | None":
    """
    returns the cost of 100 million requests. Python raises on
    float division by zero, so the zero-invocation case is
    resolved here according to the policy.
    """
    if invocations != 0:
        return (cost / invocations) * REQUESTS_SCALE

    if policy is ZeroInvocationPolicy.NULL:
        return None
    if cost == 0 or math.isnan(cost):
        return math.nan
    return math.copysign(math.inf, cost)


async def timed_query(
    source: "str",
    query: "Awaitable[float | None]",
    metrics: "ReportMetrics",
    timeout: "float | None" = None,
) -> "float | None":
    """
    awaits one external query, recording its duration and errors.
    An expired deadline surfaces as UpstreamQueryFailure.
    """
    started = time.monotonic()
    try:
        return await asyncio.wait_for(query, timeout=timeout)
    except TimeoutError as exc:
        metrics.inc_query_error(source)
        raise UpstreamQueryFailure(
            source, f"no response within {timeout} seconds"
        ) from exc
    except UpstreamQueryFailure:
        metrics.inc_query_error(source)
        raise
    finally:
        metrics.observe_query_duration(source, time.monotonic() - started)


class BucketAggregator:
    """
    BucketAggregator joins the telemetry and billing results of
    a single bucket. The three queries are issued together and the
    ratio is only computed once all of them have returned.
    """

    def __init__(
        self,
        usage_source: "UsageMetricSource",
        cost_source: "CostSource",
        metrics: "ReportMetrics",
        query_timeout: "float | None" = None,
        zero_invocations: "ZeroInvocationPolicy" = ZeroInvocationPolicy.PRESERVE,
    ) -> "None":
        self._usage = usage_source
        self._cost = cost_source
        self._metrics = metrics
        self._timeout = query_timeout
        self._zero_invocations = zero_invocations

    async def aggregate(
        self,
        bucket: "DateBucket",
        report_config: "ReportConfig",
    ) -> "CombinedRecord":
        resource = report_config.resource_name
        started = time.monotonic()

        # gather without return_exceptions: the first failure
        # propagates and fails the bucket
        invocations, duration, cost = await asyncio.gather(
            timed_query(
                "invocations",
                self._usage.fetch_invocations(bucket, resource),
                self._metrics,
                self._timeout,
            ),
            timed_query(
                "duration",
                self._usage.fetch_duration(bucket, resource),
                self._metrics,
                self._timeout,
            ),
            timed_query(
                "cost",
                self._cost.fetch_cost(bucket, report_config),
                self._metrics,
                self._timeout,
            ),
        )

        usage = UsageSample(
            invocations=self._or_default(invocations, "invocations", bucket, resource),
            average_duration=self._or_default(duration, "duration", bucket, resource),
        )
        cost_sample = CostSample(
            amortized_cost=self._or_default(cost, "cost", bucket, resource),
        )

        record = combine(bucket, usage, cost_sample, self._zero_invocations)
        logger.debug(
            "bucket_aggregated",
            resource=resource,
            period_start=record.period_start,
            elapsed_ms=round((time.monotonic() - started) * 1000),
        )
        if usage.invocations == 0:
            logger.info(
                "zero_invocations",
                resource=resource,
                period_start=record.period_start,
                cost_per_100m=record.cost_per_100m,
            )
        return record

    def _or_default(
        self,
        value: "float | None",
        source: "str",
        bucket: "DateBucket",
        resource: "str",
    ) -> "float":
        if value is not None:
            return value

        logger.info(
            "datapoint_missing",
            source=source,
            resource=resource,
            period_start=bucket.start_timestamp,
        )
        self._metrics.inc_missing_datapoint(source)
        return 0.0


def combine(
    bucket: "DateBucket",
    usage: "UsageSample",
    cost: "CostSample",
    zero_invocations: "ZeroInvocationPolicy" = ZeroInvocationPolicy.PRESERVE,
) -> "CombinedRecord":
    return CombinedRecord(
        period_start=bucket.start_timestamp,
        cost=cost.amortized_cost,
        invocations=usage.invocations,
        average_duration=usage.average_duration,
        cost_per_100m=cost_per_100m(
            cost.amortized_cost, usage.invocations, zero_invocations
        ),
    )
