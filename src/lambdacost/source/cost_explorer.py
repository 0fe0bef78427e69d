import asyncio
from typing import Any

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from lambdacost.errors import UpstreamQueryFailure
from lambdacost.partition import DateBucket
from lambdacost.report_config import ReportConfig

logger = structlog.get_logger()

COST_METRIC = "AmortizedCost"
LAMBDA_SERVICE = "AWS Lambda"


class CostExplorerSource:
    """
    CostExplorerSource implements the CostSource protocol with
    Cost Explorer GetCostAndUsage at monthly granularity.
    """

    def __init__(self, client: "Any") -> "None":
        self._client = client

    async def fetch_cost(
        self,
        bucket: "DateBucket",
        report_config: "ReportConfig",
    ) -> "float | None":
        request = build_cost_request(bucket, build_filter(report_config))
        logger.debug(
            "cost_explorer_get_cost_and_usage",
            resource=report_config.resource_name,
            start=request["TimePeriod"]["Start"],
            end=request["TimePeriod"]["End"],
        )
        return await self._query(request)

    async def fetch_account_cost(self, bucket: "DateBucket") -> "float | None":
        request = build_cost_request(bucket, None)
        logger.debug(
            "cost_explorer_get_account_cost",
            start=request["TimePeriod"]["Start"],
            end=request["TimePeriod"]["End"],
        )
        return await self._query(request)

    async def _query(self, request: "dict[str, Any]") -> "float | None":
        try:
            response = await asyncio.to_thread(
                self._client.get_cost_and_usage, **request
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamQueryFailure("cost_explorer", str(exc)) from exc

        return amortized_amount(response)


def build_filter(report_config: "ReportConfig") -> "dict[str, Any]":
    """
    narrows the cost down to the Lambda service in the resource's
    region, tagged with every configured cost allocation tag.
    """
    expressions: "list[dict[str, Any]]" = [
        {"Dimensions": {"Key": "REGION", "Values": [report_config.region]}},
        {"Dimensions": {"Key": "SERVICE", "Values": [LAMBDA_SERVICE]}},
    ]
    for tag in report_config.cost_allocation_tags:
        expressions.append({"Tags": {"Key": tag.key, "Values": list(tag.values)}})
    return {"And": expressions}


def build_cost_request(
    bucket: "DateBucket",
    expression: "dict[str, Any] | None",
) -> "dict[str, Any]":
    request: "dict[str, Any]" = {
        "TimePeriod": {
            "Start": bucket.start.isoformat(),
            "End": bucket.end.isoformat(),
        },
        "Granularity": "MONTHLY",
        "Metrics": [COST_METRIC],
    }
    if expression:
        request["Filter"] = expression
    return request


def amortized_amount(response: "dict[str, Any]") -> "float | None":
    """
    parses the amortized cost amount string. The last period
    returned wins; no periods at all means no data point.
    """
    amount: "float | None" = None
    try:
        for result in response["ResultsByTime"]:
            amount = float(result["Total"][COST_METRIC]["Amount"])
    except (KeyError, TypeError, ValueError) as exc:
        raise UpstreamQueryFailure(
            "cost_explorer", f"malformed GetCostAndUsage response: {exc}"
        ) from exc
    return amount
