import os
from dataclasses import dataclass


def _env_flag(name: "str", default: "bool") -> "bool":
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


@dataclass
class Config:
    command: "str" = ""
    # required by the single resource commands
    resource_name: "str" = ""
    # "YYYY-MM", both inclusive
    start_date: "str" = ""
    end_date: "str" = ""

    aws_profile: "str" = ""
    aws_region: "str" = ""
    aws_assume_role: "bool" = False
    # role used by the account-level commands
    aws_role_arn: "str" = ""

    report_config_path: "str" = "report-config.json"
    output_dir: "str" = "."
    log_level: "str" = "info"
    log_json: "bool" = False

    # None keeps the unbounded wait on external calls
    query_timeout: "float | None" = None
    bucket_concurrency: "int" = 1
    # "fail-fast" or "skip"
    on_error: "str" = "fail-fast"
    # "preserve" or "null"
    zero_invocations: "str" = "preserve"

    s3_bucket: "str" = ""

    opensearch_url: "str" = ""
    opensearch_index: "str" = "caa"
    opensearch_username: "str" = ""
    opensearch_password: "str" = ""
    opensearch_verify_tls: "bool" = True

    pushgateway: "str" = ""

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            aws_profile=os.environ.get("AWS_PROFILE", ""),
            aws_region=os.environ.get("AWS_REGION", ""),
            report_config_path=os.environ.get(
                "LAMBDACOST_CONFIG", "report-config.json"
            ),
            s3_bucket=os.environ.get("LAMBDACOST_BUCKET", ""),
            opensearch_url=os.environ.get("OPENSEARCH_URL", ""),
            opensearch_index=os.environ.get("OPENSEARCH_INDEX", "caa"),
            opensearch_username=os.environ.get("OPENSEARCH_USERNAME", ""),
            opensearch_password=os.environ.get("OPENSEARCH_PASSWORD", ""),
            opensearch_verify_tls=_env_flag("OPENSEARCH_VERIFY_TLS", True),
            pushgateway=os.environ.get("LAMBDACOST_PUSHGATEWAY", ""),
        )

    @property
    def opensearch_enabled(self) -> "bool":
        return bool(self.opensearch_url)
