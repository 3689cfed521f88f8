"""Region, session and transport settings for talking to AWS X-Ray."""

from __future__ import annotations

import abc
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import SplitResult, urlsplit

from xrayexport.config import Config

logger = logging.getLogger(__name__)

STS_ENDPOINT_PREFIX = "https://sts."
STS_ENDPOINT_SUFFIX = ".amazonaws.com"
STS_AWS_CN_PARTITION_ID_SUFFIX = ".amazonaws.com.cn"

AWS_PARTITION_ID = "aws"
AWS_CN_PARTITION_ID = "aws-cn"
AWS_US_GOV_PARTITION_ID = "aws-us-gov"
AWS_ISO_PARTITION_ID = "aws-iso"
AWS_ISO_B_PARTITION_ID = "aws-iso-b"

US_EAST_1_REGION_ID = "us-east-1"
CN_NORTH_1_REGION_ID = "cn-north-1"
US_GOV_WEST_1_REGION_ID = "us-gov-west-1"

# Checked in this order; the first partition whose pattern matches wins.
_PARTITIONS = (
    (AWS_PARTITION_ID, re.compile(r"^(us|eu|ap|sa|ca|me)\-\w+\-\d+$", re.ASCII)),
    (AWS_CN_PARTITION_ID, re.compile(r"^cn\-\w+\-\d+$", re.ASCII)),
    (AWS_US_GOV_PARTITION_ID, re.compile(r"^us\-gov\-\w+\-\d+$", re.ASCII)),
    (AWS_ISO_PARTITION_ID, re.compile(r"^us\-iso\-\w+\-\d+$", re.ASCII)),
    (AWS_ISO_B_PARTITION_ID, re.compile(r"^us\-isob\-\w+\-\d+$", re.ASCII)),
)

_PRIMARY_REGIONS = {
    AWS_PARTITION_ID: US_EAST_1_REGION_ID,
    AWS_CN_PARTITION_ID: CN_NORTH_1_REGION_ID,
    AWS_US_GOV_PARTITION_ID: US_GOV_WEST_1_REGION_ID,
}

_CONTROL_CHARACTERS = re.compile(r"[\x00-\x1f\x7f]")

_NO_REGION_MESSAGE = (
    "Cannot fetch region variable from config file, environment variables and ec2 metadata."
)


class NoAwsRegionError(Exception):
    """Raised when no AWS region can be found in config, environment or EC2 metadata."""

    code = "NoAwsRegion"

    def __init__(self, message: str = _NO_REGION_MESSAGE) -> None:
        super().__init__(message)
        self.message = message


class ConnAttr(abc.ABC):
    """Source of AWS sessions and of the EC2 instance's region."""

    def default_session(self) -> Dict[str, str]:
        """Return default session settings taken from the environment.

        The profile comes from ``AWS_PROFILE`` (else "default") and the
        region from ``AWS_DEFAULT_REGION`` (else "").
        """
        return {
            "profile": os.environ.get("AWS_PROFILE", "default"),
            "region": os.environ.get("AWS_DEFAULT_REGION", ""),
        }

    @abc.abstractmethod
    def new_aws_session(self, role_arn: str, region: str) -> Any:
        """Return a session for ``region``, assuming ``role_arn`` when it is set."""

    @abc.abstractmethod
    def get_ec2_region(self, session: Any) -> str:
        """Return the region of the EC2 instance the process runs on."""


@dataclass
class AWSSettings:
    """Client settings for X-Ray calls."""

    region: str
    endpoint: str = ""
    max_retries: int = 2
    disable_param_validation: bool = True
    max_idle_conns_per_host: int = 8
    request_timeout_seconds: int = 30
    proxy_url: Optional[SplitResult] = None
    insecure_skip_verify: bool = False
    use_http2: bool = True


@dataclass
class TransportSettings:
    """Transport settings for a TCP proxy server in front of X-Ray."""

    max_idle_conns: int
    max_idle_conns_per_host: int
    idle_conn_timeout_seconds: int
    proxy_url: Optional[SplitResult]
    insecure_skip_verify: bool
    # Compression stays off: an added accept-encoding header would break the signature.
    disable_compression: bool = True


def get_proxy_address(proxy_address: str) -> str:
    """Return the configured proxy address, else ``HTTPS_PROXY``, else ""."""
    if proxy_address:
        return proxy_address
    return os.environ.get("HTTPS_PROXY", "")


def get_proxy_url(proxy_address: str) -> Optional[SplitResult]:
    """Parse a proxy address; an empty address gives ``None``.

    Raises ``ValueError`` when the address is not a valid URL.
    """
    if not proxy_address:
        return None
    if _CONTROL_CHARACTERS.search(proxy_address):
        raise ValueError(f"invalid control character in URL {proxy_address!r}")
    if proxy_address.startswith(":"):
        raise ValueError(f"missing protocol scheme in URL {proxy_address!r}")
    parsed = urlsplit(proxy_address)
    # Accessing the port validates it.
    parsed.port
    return parsed


def get_partition(region: str) -> str:
    """Return the AWS partition id of a region, or "" when none matches."""
    for partition_id, pattern in _PARTITIONS:
        if pattern.match(region):
            return partition_id
    return ""


def get_sts_regional_endpoint(region: str) -> str:
    """Return the regional STS endpoint, or "" when the partition has none."""
    partition = get_partition(region)
    if partition in (AWS_PARTITION_ID, AWS_US_GOV_PARTITION_ID):
        return STS_ENDPOINT_PREFIX + region + STS_ENDPOINT_SUFFIX
    if partition == AWS_CN_PARTITION_ID:
        return STS_ENDPOINT_PREFIX + region + STS_AWS_CN_PARTITION_ID_SUFFIX
    return ""


def get_sts_primary_region(region: str) -> Optional[str]:
    """Return the primary STS region of the region's partition, if it has one."""
    return _PRIMARY_REGIONS.get(get_partition(region))


def _region_from_ec2(conn: ConnAttr) -> str:
    try:
        session = conn.default_session()
    except Exception as error:
        logger.error("Unable to retrieve default session: %s", error)
        return ""
    try:
        region = conn.get_ec2_region(session)
    except Exception as error:
        logger.error("Unable to retrieve the region from the EC2 instance: %s", error)
        return ""
    logger.debug("Fetch region from ec2 metadata: %s", region)
    return region


def get_aws_config_session(config: Config, conn: ConnAttr) -> Tuple[AWSSettings, Any]:
    """Resolve the region and return the client settings and a session.

    Raises ``ValueError`` for a bad proxy address and ``NoAwsRegionError``
    when no region can be found.
    """
    logger.debug("Using proxy address: %s", config.proxy_address)
    proxy_url = get_proxy_url(get_proxy_address(config.proxy_address))

    region_env = os.environ.get("AWS_REGION", "")
    region = ""
    if not config.region and region_env:
        region = region_env
        logger.debug("Fetch region from environment variables: %s", region)
    elif config.region:
        region = config.region
        logger.debug("Fetch region from commandline/config file: %s", region)
    elif not config.no_verify_ssl:
        region = _region_from_ec2(conn)

    if not region:
        logger.error(_NO_REGION_MESSAGE)
        raise NoAwsRegionError()

    session = conn.new_aws_session(config.role_arn, region)
    settings = AWSSettings(
        region=region,
        endpoint=config.endpoint,
        max_retries=config.max_retries,
        disable_param_validation=True,
        max_idle_conns_per_host=config.number_of_workers,
        request_timeout_seconds=config.request_timeout_seconds,
        proxy_url=proxy_url,
        insecure_skip_verify=False,
    )
    return settings, session


def proxy_server_transport(config: Config) -> TransportSettings:
    """Return transport settings for a TCP proxy server.

    Raises ``ValueError`` for a bad proxy address.
    """
    proxy_url = get_proxy_url(get_proxy_address(config.proxy_address))
    return TransportSettings(
        max_idle_conns=config.number_of_workers,
        max_idle_conns_per_host=config.number_of_workers,
        idle_conn_timeout_seconds=config.request_timeout_seconds,
        proxy_url=proxy_url,
        insecure_skip_verify=config.no_verify_ssl,
        disable_compression=True,
    )