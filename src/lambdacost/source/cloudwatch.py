import asyncio
from typing import Any

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from lambdacost.errors import UpstreamQueryFailure
from lambdacost.partition import DateBucket

logger = structlog.get_logger()

LAMBDA_NAMESPACE = "AWS/Lambda"
# one data point covering the whole month (31 days)
MONTHLY_PERIOD_SECONDS = 2678400
QUERY_ID = "m1"


class CloudWatchUsageSource:
    """
    CloudWatchUsageSource implements the UsageMetricSource protocol
    on top of CloudWatch GetMetricData. boto3 is blocking, so every
    call runs in a worker thread to let the queries of a bucket
    overlap.
    """

    def __init__(self, client: "Any") -> "None":
        self._client = client

    async def fetch_invocations(
        self,
        bucket: "DateBucket",
        resource_name: "str",
    ) -> "float | None":
        return await self._query(bucket, resource_name, "Invocations", "Sum")

    async def fetch_duration(
        self,
        bucket: "DateBucket",
        resource_name: "str",
    ) -> "float | None":
        return await self._query(bucket, resource_name, "Duration", "Average")

    async def _query(
        self,
        bucket: "DateBucket",
        resource_name: "str",
        metric_name: "str",
        stat: "str",
    ) -> "float | None":
        request = build_metric_request(bucket, resource_name, metric_name, stat)
        logger.debug(
            "cloudwatch_get_metric_data",
            metric=metric_name,
            resource=resource_name,
            start=bucket.start_timestamp,
            end=bucket.end_timestamp,
        )

        try:
            response = await asyncio.to_thread(
                self._client.get_metric_data, **request
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamQueryFailure("cloudwatch", str(exc)) from exc

        return first_value(response)


def build_metric_request(
    bucket: "DateBucket",
    resource_name: "str",
    metric_name: "str",
    stat: "str",
) -> "dict[str, Any]":
    return {
        "MetricDataQueries": [
            {
                "Id": QUERY_ID,
                "MetricStat": {
                    "Metric": {
                        "Namespace": LAMBDA_NAMESPACE,
                        "MetricName": metric_name,
                        "Dimensions": [
                            {"Name": "FunctionName", "Value": resource_name}
                        ],
                    },
                    "Period": MONTHLY_PERIOD_SECONDS,
                    "Stat": stat,
                },
                "ReturnData": True,
            }
        ],
        "StartTime": bucket.start_datetime,
        "EndTime": bucket.end_datetime,
    }


def first_value(response: "dict[str, Any]") -> "float | None":
    """
    returns the first value of the first result that has any.
    """
    try:
        results = response["MetricDataResults"]
        for result in results:
            values = result.get("Values") or []
            if values:
                return float(values[0])
    except (KeyError, TypeError, ValueError) as exc:
        raise UpstreamQueryFailure(
            "cloudwatch", f"malformed GetMetricData response: {exc}"
        ) from exc
    return None
