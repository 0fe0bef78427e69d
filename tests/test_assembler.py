import asyncio

import pytest
from prometheus_client import CollectorRegistry

from lambdacost.aggregator import BucketAggregator
from lambdacost.assembler import (
    AccountReportAssembler,
    ErrorPolicy,
    ReportAssembler,
    percentage_change,
    with_percentage_change,
)
from lambdacost.errors import UpstreamQueryFailure
from lambdacost.metrics import ReportMetrics
from lambdacost.partition import DateBucket, partition
from lambdacost.report_config import ReportConfig


class ScriptedSource:
    """
    A mock source serving both protocols. Values, delays and
    failures are keyed by the bucket's start month.
    """

    def __init__(
        self,
        costs: "dict[str, float]",
        invocations: "float" = 100.0,
        delays: "dict[str, float] | None" = None,
        failing: "set[str] | None" = None,
    ) -> "None":
        self._costs = costs
        self._invocations = invocations
        self._delays = delays or {}
        self._failing = failing or set()
        self.cost_calls: "list[str]" = []
        self.answered: "list[str]" = []

    async def _cost_for(self, bucket: "DateBucket") -> "float | None":
        month = bucket.start.strftime("%Y-%m")
        self.cost_calls.append(month)
        await asyncio.sleep(self._delays.get(month, 0.0))
        self.answered.append(month)
        if month in self._failing:
            raise UpstreamQueryFailure("cost_explorer", f"failed {month}")
        return self._costs.get(month)

    async def fetch_invocations(
        self, bucket: "DateBucket", resource_name: "str"
    ) -> "float | None":
        return self._invocations

    async def fetch_duration(
        self, bucket: "DateBucket", resource_name: "str"
    ) -> "float | None":
        return 10.0

    async def fetch_cost(
        self, bucket: "DateBucket", report_config: "ReportConfig"
    ) -> "float | None":
        return await self._cost_for(bucket)

    async def fetch_account_cost(self, bucket: "DateBucket") -> "float | None":
        return await self._cost_for(bucket)


def _assembler(
    source: "ScriptedSource",
    metrics: "ReportMetrics",
    on_error: "ErrorPolicy" = ErrorPolicy.FAIL_FAST,
    concurrency: "int" = 1,
) -> "ReportAssembler":
    return ReportAssembler(
        BucketAggregator(source, source, metrics),
        metrics,
        on_error=on_error,
        bucket_concurrency=concurrency,
    )


class TestReportAssembler:
    @pytest.mark.asyncio
    async def test_one_record_per_bucket_in_order(
        self,
        metrics: "ReportMetrics",
        report_config: "ReportConfig",
    ) -> "None":
        source = ScriptedSource({"2024-01": 1.0, "2024-02": 2.0, "2024-03": 3.0})
        buckets = partition("2024-01", "2024-03")

        records = await _assembler(source, metrics).assemble(buckets, report_config)

        assert [r.period_start for r in records] == [
            "2024-01-01T00:00:00Z",
            "2024-02-01T00:00:00Z",
            "2024-03-01T00:00:00Z",
        ]
        assert [r.cost for r in records] == [1.0, 2.0, 3.0]
        assert records[0].cost_per_100m == 1000000.0

    @pytest.mark.asyncio
    async def test_concurrent_buckets_keep_bucket_order(
        self,
        metrics: "ReportMetrics",
        report_config: "ReportConfig",
    ) -> "None":
        # earlier months answer last
        source = ScriptedSource(
            {"2024-01": 1.0, "2024-02": 2.0, "2024-03": 3.0},
            delays={"2024-01": 0.06, "2024-02": 0.03, "2024-03": 0.0},
        )
        buckets = partition("2024-01", "2024-03")

        records = await _assembler(source, metrics, concurrency=3).assemble(
            buckets, report_config
        )

        assert [r.cost for r in records] == [1.0, 2.0, 3.0]
        assert source.cost_calls == ["2024-01", "2024-02", "2024-03"]

    @pytest.mark.asyncio
    async def test_empty_bucket_still_produces_record(
        self,
        metrics: "ReportMetrics",
        report_config: "ReportConfig",
    ) -> "None":
        source = ScriptedSource({}, invocations=0.0)

        records = await _assembler(source, metrics).assemble(
            partition("2024-01", "2024-01"), report_config
        )

        assert len(records) == 1
        assert records[0].cost == 0.0

    @pytest.mark.asyncio
    async def test_fail_fast_stops_at_first_failure(
        self,
        metrics: "ReportMetrics",
        report_config: "ReportConfig",
    ) -> "None":
        source = ScriptedSource(
            {"2024-01": 1.0, "2024-03": 3.0},
            failing={"2024-02"},
        )

        with pytest.raises(UpstreamQueryFailure):
            await _assembler(source, metrics).assemble(
                partition("2024-01", "2024-03"), report_config
            )

        # March is never queried
        assert source.cost_calls == ["2024-01", "2024-02"]

    @pytest.mark.asyncio
    async def test_concurrent_fail_fast_cancels_other_buckets(
        self,
        metrics: "ReportMetrics",
        report_config: "ReportConfig",
    ) -> "None":
        source = ScriptedSource(
            {"2024-02": 2.0, "2024-03": 3.0},
            delays={"2024-02": 0.2, "2024-03": 0.2},
            failing={"2024-01"},
        )

        # the failure itself surfaces, not a task group wrapper
        with pytest.raises(UpstreamQueryFailure, match="failed 2024-01"):
            await _assembler(source, metrics, concurrency=3).assemble(
                partition("2024-01", "2024-03"), report_config
            )

        assert source.cost_calls == ["2024-01", "2024-02", "2024-03"]
        assert source.answered == ["2024-01"]

    @pytest.mark.asyncio
    async def test_skip_drops_failing_bucket(
        self,
        registry: "CollectorRegistry",
        metrics: "ReportMetrics",
        report_config: "ReportConfig",
    ) -> "None":
        source = ScriptedSource(
            {"2024-01": 1.0, "2024-03": 3.0},
            failing={"2024-02"},
        )

        records = await _assembler(source, metrics, ErrorPolicy.SKIP).assemble(
            partition("2024-01", "2024-03"), report_config
        )

        assert [r.cost for r in records] == [1.0, 3.0]
        assert registry.get_sample_value(
            "lambdacost_buckets_total", {"outcome": "skipped"}
        ) == 1.0
        assert registry.get_sample_value(
            "lambdacost_buckets_total", {"outcome": "ok"}
        ) == 2.0


class TestPercentageChange:
    def test_first_bucket_is_zero(self) -> "None":
        records = with_percentage_change([("2024-01-01T00:00:00Z", 100.0)])
        assert records[0].cost_percentage_change == 0

    def test_change_from_prior_bucket(self) -> "None":
        records = with_percentage_change(
            [
                ("2024-01-01T00:00:00Z", 100.0),
                ("2024-02-01T00:00:00Z", 150.0),
                ("2024-03-01T00:00:00Z", 75.0),
            ]
        )
        assert [r.cost_percentage_change for r in records] == [0.0, 50.0, -50.0]

    def test_zero_prior_cost_is_zero_change(self) -> "None":
        assert percentage_change(42.0, 0.0) == 0.0


class TestAccountReportAssembler:
    @pytest.mark.asyncio
    async def test_builds_account_records(
        self,
        metrics: "ReportMetrics",
    ) -> "None":
        source = ScriptedSource({"2024-01": 100.0, "2024-02": 150.0})
        assembler = AccountReportAssembler(source, metrics)

        records = await assembler.assemble(partition("2024-01", "2024-02"))

        assert [(r.period_start, r.cost, r.cost_percentage_change) for r in records] == [
            ("2024-01-01T00:00:00Z", 100.0, 0.0),
            ("2024-02-01T00:00:00Z", 150.0, 50.0),
        ]

    @pytest.mark.asyncio
    async def test_concurrent_fetch_keeps_traversal_order(
        self,
        metrics: "ReportMetrics",
    ) -> "None":
        source = ScriptedSource(
            {"2024-01": 100.0, "2024-02": 150.0, "2024-03": 300.0},
            delays={"2024-01": 0.05, "2024-02": 0.0, "2024-03": 0.02},
        )
        assembler = AccountReportAssembler(source, metrics, bucket_concurrency=3)

        records = await assembler.assemble(partition("2024-01", "2024-03"))

        assert [r.cost_percentage_change for r in records] == [0.0, 50.0, 100.0]

    @pytest.mark.asyncio
    async def test_missing_month_counts_as_zero_cost(
        self,
        registry: "CollectorRegistry",
        metrics: "ReportMetrics",
    ) -> "None":
        source = ScriptedSource({"2024-02": 80.0})
        assembler = AccountReportAssembler(source, metrics)

        records = await assembler.assemble(partition("2024-01", "2024-02"))

        assert [r.cost for r in records] == [0.0, 80.0]
        assert [r.cost_percentage_change for r in records] == [0.0, 0.0]
        assert registry.get_sample_value(
            "lambdacost_missing_datapoints_total", {"source": "account_cost"}
        ) == 1.0
