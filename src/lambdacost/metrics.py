from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    push_to_gateway,
)

PUSHGATEWAY_JOB = "lambdacost"


class ReportMetrics:
    """
    records per-query timings and outcomes of a report run.
    A run is one-shot, so the registry is only exposed by
    pushing it to a Pushgateway at the end.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._registry: "CollectorRegistry" = registry
        self._query_duration: "Histogram" = Histogram(
            "lambdacost_query_duration_seconds",
            "Duration of external usage and cost queries",
            ["source"],
            registry=registry,
        )
        self._query_errors: "Counter" = Counter(
            "lambdacost_query_errors_total",
            "Total number of failed external queries by source",
            ["source"],
            registry=registry,
        )
        self._missing_datapoints: "Counter" = Counter(
            "lambdacost_missing_datapoints_total",
            "Queries that returned no data point for a bucket",
            ["source"],
            registry=registry,
        )
        self._buckets: "Counter" = Counter(
            "lambdacost_buckets_total",
            "Buckets processed by outcome",
            ["outcome"],
            registry=registry,
        )
        self._last_report_success: "Gauge" = Gauge(
            "lambdacost_last_report_success_timestamp_seconds",
            "Unix timestamp of the last completed report",
            ["report"],
            registry=registry,
        )

    @property
    def registry(self) -> "CollectorRegistry":
        return self._registry

    def observe_query_duration(
        self, source: "str", duration_seconds: "float"
    ) -> "None":
        self._query_duration.labels(source=source).observe(duration_seconds)

    def inc_query_error(self, source: "str") -> "None":
        self._query_errors.labels(source=source).inc()

    def inc_missing_datapoint(self, source: "str") -> "None":
        self._missing_datapoints.labels(source=source).inc()

    def inc_bucket(self, outcome: "str") -> "None":
        self._buckets.labels(outcome=outcome).inc()

    def set_last_report_success(self, report: "str", timestamp: "float") -> "None":
        self._last_report_success.labels(report=report).set(timestamp)

    def push(self, gateway: "str") -> "None":
        push_to_gateway(gateway, job=PUSHGATEWAY_JOB, registry=self._registry)
