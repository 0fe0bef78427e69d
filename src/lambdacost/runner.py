import time
from collections.abc import Callable

import structlog

from lambdacost.aggregator import BucketAggregator, ZeroInvocationPolicy
from lambdacost.assembler import AccountReportAssembler, ErrorPolicy, ReportAssembler
from lambdacost.aws import AwsClients, create_clients, create_session
from lambdacost.config import Config
from lambdacost.metrics import ReportMetrics
from lambdacost.models import AccountReport, ResourceReport
from lambdacost.partition import DateBucket, partition
from lambdacost.report_config import ReportConfig, ReportConfigStore
from lambdacost.sink.base import ReportSink
from lambdacost.sink.csv_file import CsvFileSink, account_report_path, report_path
from lambdacost.sink.opensearch import OpenSearchSink
from lambdacost.sink.s3 import ACCOUNT_NAMESPACE, RESOURCE_NAMESPACE, S3ReportSink
from lambdacost.source.cloudwatch import CloudWatchUsageSource
from lambdacost.source.cost_explorer import CostExplorerSource

logger = structlog.get_logger()

# (region, role_arn) -> clients; an empty role_arn means no role exchange
ClientFactory = Callable[[str, str], AwsClients]


def session_client_factory(profile: "str") -> "ClientFactory":
    def _factory(region: "str", role_arn: "str") -> "AwsClients":
        session = create_session(
            region=region,
            profile=profile,
            assume_role=bool(role_arn),
            role_arn=role_arn,
        )
        return create_clients(session)

    return _factory


class ReportRunner:
    """
    ReportRunner wires sources, assemblers and sinks for each CLI
    command. Every command runs once over the configured month range;
    nothing is kept between runs.
    """

    def __init__(
        self,
        config: "Config",
        metrics: "ReportMetrics",
        client_factory: "ClientFactory | None" = None,
        report_configs: "ReportConfigStore | None" = None,
    ) -> "None":
        self._config = config
        self._metrics = metrics
        self._client_factory = client_factory or session_client_factory(
            config.aws_profile
        )
        self._report_configs = report_configs

    @property
    def report_configs(self) -> "ReportConfigStore":
        # loaded on first use so account and upload commands
        # do not need the file
        if self._report_configs is None:
            self._report_configs = ReportConfigStore.from_file(
                self._config.report_config_path
            )
        return self._report_configs

    def _buckets(self) -> "list[DateBucket]":
        return partition(self._config.start_date, self._config.end_date)

    def _role_arn(self, role_arn: "str") -> "str":
        return role_arn if self._config.aws_assume_role else ""

    def _sinks(self) -> "list[ReportSink]":
        sinks: "list[ReportSink]" = [CsvFileSink(self._config.output_dir)]
        if self._config.opensearch_enabled:
            sinks.append(
                OpenSearchSink(
                    base_url=self._config.opensearch_url,
                    index=self._config.opensearch_index,
                    username=self._config.opensearch_username,
                    password=self._config.opensearch_password,
                    verify_tls=self._config.opensearch_verify_tls,
                )
            )
        return sinks

    async def create_report(self, resource_name: "str") -> "ResourceReport":
        buckets = self._buckets()
        report_config = self.report_configs.find(resource_name)
        return await self._create_report(buckets, report_config)

    async def create_reports(self) -> "list[ResourceReport]":
        buckets = self._buckets()
        reports: "list[ResourceReport]" = []
        for report_config in self.report_configs:
            reports.append(await self._create_report(buckets, report_config))
        return reports

    async def _create_report(
        self,
        buckets: "list[DateBucket]",
        report_config: "ReportConfig",
    ) -> "ResourceReport":
        structlog.contextvars.bind_contextvars(resource=report_config.resource_name)
        try:
            clients = self._client_factory(
                report_config.region,
                self._role_arn(report_config.report_query_role_arn),
            )
            aggregator = BucketAggregator(
                CloudWatchUsageSource(clients.cloudwatch),
                CostExplorerSource(clients.cost_explorer),
                self._metrics,
                query_timeout=self._config.query_timeout,
                zero_invocations=ZeroInvocationPolicy(self._config.zero_invocations),
            )
            assembler = ReportAssembler(
                aggregator,
                self._metrics,
                on_error=ErrorPolicy(self._config.on_error),
                bucket_concurrency=self._config.bucket_concurrency,
            )
            records = await assembler.assemble(buckets, report_config)

            report = ResourceReport(
                resource_name=report_config.resource_name,
                start_month=self._config.start_date,
                end_month=self._config.end_date,
                records=tuple(records),
            )
            await self._write(report)
            self._metrics.set_last_report_success(
                report_config.resource_name, time.time()
            )
            return report
        finally:
            structlog.contextvars.unbind_contextvars("resource")

    async def create_report_account(self) -> "AccountReport":
        buckets = self._buckets()
        clients = self._client_factory(
            self._config.aws_region, self._role_arn(self._config.aws_role_arn)
        )
        assembler = AccountReportAssembler(
            CostExplorerSource(clients.cost_explorer),
            self._metrics,
            query_timeout=self._config.query_timeout,
            on_error=ErrorPolicy(self._config.on_error),
            bucket_concurrency=self._config.bucket_concurrency,
        )
        records = await assembler.assemble(buckets)

        report = AccountReport(
            start_month=self._config.start_date,
            end_month=self._config.end_date,
            records=tuple(records),
        )
        await self._write_account(report)
        self._metrics.set_last_report_success("account", time.time())
        return report

    async def _write(self, report: "ResourceReport") -> "None":
        for sink in self._sinks():
            try:
                await sink.write(report)
            finally:
                await _close(sink)

    async def _write_account(self, report: "AccountReport") -> "None":
        for sink in self._sinks():
            try:
                await sink.write_account(report)
            finally:
                await _close(sink)

    def _s3_sink(self) -> "S3ReportSink":
        clients = self._client_factory(self._config.aws_region, "")
        return S3ReportSink(
            clients.s3,
            self._config.s3_bucket,
            CsvFileSink(self._config.output_dir),
        )

    async def upload_report(self, resource_name: "str") -> "str":
        # validates the month range even though no query runs
        self._buckets()
        path = report_path(
            self._config.output_dir,
            resource_name,
            self._config.start_date,
            self._config.end_date,
        )
        return await self._s3_sink().upload_file(path, RESOURCE_NAMESPACE)

    async def upload_reports(self) -> "list[str]":
        self._buckets()
        sink = self._s3_sink()
        keys: "list[str]" = []
        for report_config in self.report_configs:
            path = report_path(
                self._config.output_dir,
                report_config.resource_name,
                self._config.start_date,
                self._config.end_date,
            )
            keys.append(await sink.upload_file(path, RESOURCE_NAMESPACE))
        return keys

    async def upload_report_account(self) -> "str":
        self._buckets()
        path = account_report_path(
            self._config.output_dir,
            self._config.start_date,
            self._config.end_date,
        )
        return await self._s3_sink().upload_file(path, ACCOUNT_NAMESPACE)


async def _close(sink: "ReportSink") -> "None":
    close = getattr(sink, "close", None)
    if close is not None:
        await close()
