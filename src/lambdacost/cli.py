import argparse

from lambdacost.config import Config

RESOURCE_COMMANDS = ("create-report", "upload-report")
COMMANDS = (
    "create-report",
    "create-reports",
    "create-report-account",
    "upload-report",
    "upload-reports",
    "upload-report-account",
)

# flag dest -> Config attribute, only applied when the flag is given
# so environment values survive
_ENV_BACKED = {
    "aws_profile": "aws_profile",
    "aws_region": "aws_region",
    "config_path": "report_config_path",
    "s3_bucket": "s3_bucket",
    "opensearch_url": "opensearch_url",
    "opensearch_index": "opensearch_index",
    "pushgateway": "pushgateway",
}


def _positive_int(value: "str") -> "int":
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def _positive_float(value: "str") -> "float":
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")
    return number


def _command_parser() -> "argparse.ArgumentParser":
    shared = argparse.ArgumentParser(add_help=False)
    shared.add_argument(
        "--aws.profile",
        dest="aws_profile",
        default=None,
        help="AWS profile name (default: $AWS_PROFILE)",
    )
    shared.add_argument(
        "--aws.region",
        dest="aws_region",
        default=None,
        help="AWS region for account and upload commands (default: $AWS_REGION)",
    )
    shared.add_argument(
        "--aws.assume-role",
        dest="aws_assume_role",
        action="store_true",
        help="Exchange the profile credentials for the report query role",
    )
    shared.add_argument(
        "--aws.role-arn",
        dest="aws_role_arn",
        default="",
        help="Role assumed by the account commands",
    )
    shared.add_argument(
        "--start-date",
        dest="start_date",
        required=True,
        help="First month of the report, YYYY-MM",
    )
    shared.add_argument(
        "--end-date",
        dest="end_date",
        required=True,
        help="Last month of the report, YYYY-MM",
    )
    shared.add_argument(
        "--resource-name",
        dest="resource_name",
        default="",
        help="Function name as found in the report config",
    )
    shared.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Report config file (default: report-config.json)",
    )
    shared.add_argument(
        "--output-dir",
        dest="output_dir",
        default=".",
        help="Directory of the CSV reports (default: .)",
    )
    shared.add_argument(
        "--query-timeout",
        dest="query_timeout",
        type=_positive_float,
        default=None,
        help="Deadline in seconds for each external query (default: none)",
    )
    shared.add_argument(
        "--bucket-concurrency",
        dest="bucket_concurrency",
        type=_positive_int,
        default=1,
        help="Months queried at the same time (default: 1)",
    )
    shared.add_argument(
        "--on-error",
        dest="on_error",
        default="fail-fast",
        choices=["fail-fast", "skip"],
        help="What a failing month does to the run (default: fail-fast)",
    )
    shared.add_argument(
        "--zero-invocations",
        dest="zero_invocations",
        default="preserve",
        choices=["preserve", "null"],
        help="Cost per 100M requests for months without invocations "
        "(default: preserve, i.e. inf/nan)",
    )
    shared.add_argument(
        "--opensearch.url",
        dest="opensearch_url",
        default=None,
        help="Also index the report into OpenSearch (default: $OPENSEARCH_URL)",
    )
    shared.add_argument(
        "--opensearch.index",
        dest="opensearch_index",
        default=None,
        help="OpenSearch index (default: caa)",
    )
    shared.add_argument(
        "--s3.bucket",
        dest="s3_bucket",
        default=None,
        help="Bucket of the upload commands (default: $LAMBDACOST_BUCKET)",
    )
    shared.add_argument(
        "--metrics.pushgateway",
        dest="pushgateway",
        default=None,
        help="Push run metrics to this Pushgateway address",
    )

    parser = argparse.ArgumentParser(
        prog="lambdacost",
        description="Monthly cost efficiency reports for AWS Lambda functions",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log.json",
        dest="log_json",
        action="store_true",
        help="Render logs as JSON lines",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    for command in COMMANDS:
        subparsers.add_parser(command, parents=[shared])
    return parser


def parse_args(argv: "list[str] | None" = None) -> "Config":
    parser = _command_parser()
    args = parser.parse_args(argv)

    if args.command in RESOURCE_COMMANDS and not args.resource_name:
        parser.error(f"{args.command} requires --resource-name")

    config = Config.from_env()
    config.command = args.command
    config.resource_name = args.resource_name
    config.start_date = args.start_date
    config.end_date = args.end_date
    config.aws_assume_role = args.aws_assume_role
    config.aws_role_arn = args.aws_role_arn
    config.output_dir = args.output_dir
    config.query_timeout = args.query_timeout
    config.bucket_concurrency = args.bucket_concurrency
    config.on_error = args.on_error
    config.zero_invocations = args.zero_invocations
    config.log_level = args.log_level
    config.log_json = args.log_json

    for dest, attribute in _ENV_BACKED.items():
        value = getattr(args, dest)
        if value is not None:
            setattr(config, attribute, value)
    return config
