import math
from datetime import datetime
from typing import Any

import httpx
import structlog

from lambdacost.errors import UpstreamQueryFailure
from lambdacost.models import (
    AccountReport,
    AccountReportRecord,
    CombinedRecord,
    ResourceReport,
)

logger = structlog.get_logger()

ACCOUNT_IDENTITY = "account"


def document_id(identity: "str", period_start: "str") -> "str":
    """
    builds "{identity}-{year}-{month}" from a bucket timestamp.
    The month is not zero padded: 2024-07 gives "-2024-7".
    """
    timestamp = datetime.strptime(period_start, "%Y-%m-%dT%H:%M:%SZ")
    return f"{identity}-{timestamp.year}-{timestamp.month}"


def _json_number(value: "float | None") -> "float | None":
    # JSON has no representation for inf or nan
    if value is None or not math.isfinite(value):
        return None
    return value


def resource_document(
    resource_name: "str", record: "CombinedRecord"
) -> "dict[str, Any]":
    return {
        "resource_name": resource_name,
        "period_start": record.period_start,
        "cost": _json_number(record.cost),
        "invocations": _json_number(record.invocations),
        "average_duration": _json_number(record.average_duration),
        "cost_per_100m": _json_number(record.cost_per_100m),
    }


def account_document(record: "AccountReportRecord") -> "dict[str, Any]":
    return {
        "period_start": record.period_start,
        "cost": _json_number(record.cost),
        "cost_percentage_change": _json_number(record.cost_percentage_change),
    }


class OpenSearchSink:
    """
    OpenSearchSink upserts one document per bucket. Document ids
    are derived from the identity and the bucket month, so a
    re-run overwrites instead of duplicating.
    """

    def __init__(
        self,
        base_url: "str",
        index: "str",
        username: "str" = "",
        password: "str" = "",
        verify_tls: "bool" = True,
        timeout: "float | None" = 10.0,
    ) -> "None":
        self._base_url = base_url.rstrip("/")
        self._index = index
        auth = httpx.BasicAuth(username, password) if username else None
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(
            auth=auth,
            verify=verify_tls,
            timeout=timeout,
        )

    @property
    def name(self) -> "str":
        return "opensearch"

    async def close(self) -> "None":
        """
        closes the underlying HTTP client.
        """
        await self._client.aclose()

    async def write(self, report: "ResourceReport") -> "None":
        for record in report.records:
            await self._upsert(
                document_id(report.resource_name, record.period_start),
                resource_document(report.resource_name, record),
            )
        logger.info(
            "opensearch_report_indexed",
            resource=report.resource_name,
            documents=len(report.records),
        )

    async def write_account(self, report: "AccountReport") -> "None":
        for record in report.records:
            await self._upsert(
                document_id(ACCOUNT_IDENTITY, record.period_start),
                account_document(record),
            )
        logger.info("opensearch_account_report_indexed", documents=len(report.records))

    async def _upsert(self, doc_id: "str", document: "dict[str, Any]") -> "None":
        url = f"{self._base_url}/{self._index}/_doc/{doc_id}"
        logger.debug("opensearch_upsert", url=url)

        try:
            resp = await self._client.post(url, json=document)
        except httpx.HTTPError as exc:
            raise UpstreamQueryFailure("opensearch", str(exc)) from exc

        if resp.is_error:
            raise UpstreamQueryFailure(
                "opensearch",
                f"{resp.status_code} indexing {doc_id}: {resp.text}",
            )
        logger.debug("opensearch_upserted", doc_id=doc_id, status=resp.status_code)
