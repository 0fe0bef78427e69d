from typing import Any

import pytest
from botocore.exceptions import ClientError, NoRegionError
from prometheus_client import CollectorRegistry

from lambdacost.metrics import ReportMetrics
from lambdacost.report_config import ReportConfig, TagKeyValues


def make_client_error(operation_name: "str", code: "str" = "AccessDenied") -> "ClientError":
    return ClientError({"Error": {"Code": code, "Message": "Denied"}}, operation_name)


class FakeCloudWatchClient:
    """
    A fake CloudWatch client answering GetMetricData from
    pre-configured values per metric name.
    """

    def __init__(
        self,
        values: "dict[str, list[float]] | None" = None,
        fail: "bool" = False,
    ) -> "None":
        self._values = values or {}
        self._fail = fail
        self.requests: "list[dict[str, Any]]" = []

    def get_metric_data(self, **kwargs: "Any") -> "dict[str, Any]":
        self.requests.append(kwargs)
        if self._fail:
            raise make_client_error("GetMetricData")
        query = kwargs["MetricDataQueries"][0]
        metric_name = query["MetricStat"]["Metric"]["MetricName"]
        return {
            "MetricDataResults": [
                {"Id": query["Id"], "Values": list(self._values.get(metric_name, []))}
            ]
        }


class FakeCostExplorerClient:
    """
    A fake Cost Explorer client returning the amounts keyed
    by the requested period start date.
    """

    def __init__(
        self,
        amounts: "dict[str, str] | None" = None,
        fail: "bool" = False,
    ) -> "None":
        self._amounts = amounts or {}
        self._fail = fail
        self.requests: "list[dict[str, Any]]" = []

    def get_cost_and_usage(self, **kwargs: "Any") -> "dict[str, Any]":
        self.requests.append(kwargs)
        if self._fail:
            raise make_client_error("GetCostAndUsage")
        start = kwargs["TimePeriod"]["Start"]
        if start not in self._amounts:
            return {"ResultsByTime": []}
        return {
            "ResultsByTime": [
                {
                    "TimePeriod": kwargs["TimePeriod"],
                    "Total": {
                        "AmortizedCost": {"Amount": self._amounts[start], "Unit": "USD"}
                    },
                    "Estimated": False,
                }
            ]
        }


class FakeS3Client:
    def __init__(self, fail: "bool" = False) -> "None":
        self._fail = fail
        self.objects: "dict[tuple[str, str], bytes]" = {}

    def put_object(self, **kwargs: "Any") -> "dict[str, Any]":
        if self._fail:
            raise make_client_error("PutObject")
        self.objects[(kwargs["Bucket"], kwargs["Key"])] = kwargs["Body"]
        return {"ETag": '"etag"'}



class FakeBotoSession:
    """
    stands in for a boto3 session handing out pre-built clients.
    Like the real one, regional clients need a region; s3 falls
    back to its global endpoint.
    """

    def __init__(
        self,
        clients: "dict[str, Any]",
        region_name: "str | None" = None,
    ) -> "None":
        self._clients = clients
        self.region_name = region_name
        self.created: "list[str]" = []

    def client(self, service: "str", region_name: "str | None" = None) -> "Any":
        if service != "s3" and not (region_name or self.region_name):
            raise NoRegionError()
        self.created.append(service)
        return self._clients[service]

@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def metrics(registry: "CollectorRegistry") -> "ReportMetrics":
    return ReportMetrics(registry=registry)


@pytest.fixture()
def report_config() -> "ReportConfig":
    return ReportConfig(
        region="us-west-2",
        report_query_role_arn="arn:aws:iam::123456789012:role/report",
        resource_name="app-x",
        cost_allocation_tags=(TagKeyValues(key="Name", values=("app-x",)),),
    )
