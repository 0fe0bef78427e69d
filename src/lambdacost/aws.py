from functools import cached_property
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from lambdacost.errors import UpstreamQueryFailure

logger = structlog.get_logger()

# Cost Explorer only answers in us-east-1
COST_EXPLORER_REGION = "us-east-1"
ROLE_SESSION_NAME = "lambdacost-report"


class AwsClients:
    """
    AwsClients is the credentialed handle shared by every
    query of a run. Each client is created on first access and
    reused afterwards, so a command only builds what it queries;
    boto3 clients are safe to share across threads.
    """

    def __init__(self, session: "Any") -> "None":
        self._session = session
        self.region: "str" = session.region_name or ""

    @cached_property
    def cloudwatch(self) -> "Any":
        return self._client("cloudwatch")

    @cached_property
    def cost_explorer(self) -> "Any":
        return self._client("ce", region_name=COST_EXPLORER_REGION)

    @cached_property
    def s3(self) -> "Any":
        return self._client("s3")

    def _client(self, service: "str", **kwargs: "Any") -> "Any":
        try:
            return self._session.client(service, **kwargs)
        except BotoCoreError as exc:
            # NoRegionError for regional services without a region
            raise UpstreamQueryFailure("aws", f"{service}: {exc}") from exc


def _session(**kwargs: "Any") -> "boto3.Session":
    try:
        return boto3.Session(**kwargs)
    except BotoCoreError as exc:
        # ProfileNotFound and friends
        raise UpstreamQueryFailure("aws", str(exc)) from exc


def create_session(
    region: "str",
    profile: "str" = "",
    assume_role: "bool" = False,
    role_arn: "str" = "",
) -> "boto3.Session":
    """
    builds a boto3 session for the given profile and region. When
    assume_role is set, the profile's credentials are exchanged for
    the role's temporary credentials through STS.
    """
    session = _session(profile_name=profile or None, region_name=region or None)

    if not assume_role:
        return session

    if not role_arn:
        raise UpstreamQueryFailure("sts", "assume role requested without a role ARN")

    logger.debug("assume_role", role_arn=role_arn)
    try:
        response = session.client("sts").assume_role(
            RoleArn=role_arn,
            RoleSessionName=ROLE_SESSION_NAME,
        )
    except (BotoCoreError, ClientError) as exc:
        raise UpstreamQueryFailure("sts", str(exc)) from exc

    creds = response["Credentials"]
    return _session(
        aws_access_key_id=creds["AccessKeyId"],
        aws_secret_access_key=creds["SecretAccessKey"],
        aws_session_token=creds["SessionToken"],
        region_name=region or None,
    )


def create_clients(session: "boto3.Session") -> "AwsClients":
    return AwsClients(session)
