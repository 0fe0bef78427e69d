from typing import Protocol

from lambdacost.partition import DateBucket
from lambdacost.report_config import ReportConfig


class UsageMetricSource(Protocol):
    """
    UsageMetricSource stands as the common protocol for
    telemetry backends.

    Each query covers one bucket for one resource and returns
    None when the backend holds no data point for it.
    """

    async def fetch_invocations(
        self,
        bucket: "DateBucket",
        resource_name: "str",
    ) -> "float | None": ...

    async def fetch_duration(
        self,
        bucket: "DateBucket",
        resource_name: "str",
    ) -> "float | None": ...


class CostSource(Protocol):
    """
    CostSource stands as the common protocol for billing
    backends. A resource query is filtered by the report
    config; an account query is not filtered at all.
    """

    async def fetch_cost(
        self,
        bucket: "DateBucket",
        report_config: "ReportConfig",
    ) -> "float | None": ...

    async def fetch_account_cost(
        self,
        bucket: "DateBucket",
    ) -> "float | None": ...
