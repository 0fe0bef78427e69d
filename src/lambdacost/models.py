from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class UsageSample:
    """
    UsageSample holds the telemetry values for
    one bucket. Missing data points are 0.0.
    """

    invocations: "float" = 0.0
    # milliseconds, as reported by the telemetry source
    average_duration: "float" = 0.0


@dataclass(frozen=True, slots=True)
class CostSample:
    amortized_cost: "float" = 0.0


@dataclass(frozen=True, slots=True)
class CombinedRecord:
    """
    CombinedRecord is the joined result of one bucket
    for a single resource.
    """

    # midnight UTC timestamp, e.g. "2024-07-01T00:00:00Z"
    period_start: "str"
    cost: "float"
    invocations: "float"
    average_duration: "float"
    # None only when zero invocations are reported as null
    cost_per_100m: "float | None"


@dataclass(frozen=True, slots=True)
class AccountReportRecord:
    period_start: "str"
    cost: "float"
    cost_percentage_change: "float"


@dataclass(frozen=True, slots=True)
class ResourceReport:
    """
    ResourceReport is the assembled time series of one
    resource over the requested month range.
    """

    resource_name: "str"
    # "YYYY-MM", as given by the caller
    start_month: "str"
    end_month: "str"
    records: "tuple[CombinedRecord, ...]"


@dataclass(frozen=True, slots=True)
class AccountReport:
    start_month: "str"
    end_month: "str"
    records: "tuple[AccountReportRecord, ...]"
