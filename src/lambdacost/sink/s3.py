import asyncio
from pathlib import Path
from typing import Any

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from lambdacost.errors import ReportError, UpstreamQueryFailure
from lambdacost.models import AccountReport, ResourceReport
from lambdacost.sink.csv_file import OUTPUT_SUFFIX, CsvFileSink

logger = structlog.get_logger()

RESOURCE_NAMESPACE = "lambda-costs"
ACCOUNT_NAMESPACE = "account-costs"


def object_key(local_path: "str | Path", namespace: "str") -> "str":
    """
    derives the object key from the local report file name, e.g.
    "./app-x-2024-01-2024-03-output.csv" becomes
    "lambda-costs/app-x-2024-01-2024-03.csv".
    """
    name = Path(local_path).name
    if name.endswith(OUTPUT_SUFFIX):
        name = name[: -len(OUTPUT_SUFFIX)] + ".csv"
    return f"{namespace}/{name}"


class S3ReportSink:
    """
    S3ReportSink uploads the CSV file written by a CsvFileSink
    as a single object. The file must already exist.
    """

    def __init__(
        self,
        client: "Any",
        bucket: "str",
        csv_sink: "CsvFileSink",
    ) -> "None":
        if not bucket:
            raise ReportError("No object store bucket configured")
        self._client = client
        self._bucket = bucket
        self._csv_sink = csv_sink

    @property
    def name(self) -> "str":
        return "s3"

    async def write(self, report: "ResourceReport") -> "None":
        await self.upload_file(self._csv_sink.path_for(report), RESOURCE_NAMESPACE)

    async def write_account(self, report: "AccountReport") -> "None":
        await self.upload_file(
            self._csv_sink.account_path_for(report), ACCOUNT_NAMESPACE
        )

    async def upload_file(self, local_path: "str | Path", namespace: "str") -> "str":
        path = Path(local_path)
        key = object_key(path, namespace)

        try:
            body = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise ReportError(f"Cannot read report file {path}: {exc}") from exc

        logger.debug("s3_put_object", bucket=self._bucket, key=key, size=len(body))
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=body,
                ContentType="text/csv",
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamQueryFailure("s3", str(exc)) from exc

        logger.info("s3_report_uploaded", bucket=self._bucket, key=key)
        return key
