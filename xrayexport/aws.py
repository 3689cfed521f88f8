"""AWS section of an X-Ray segment."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from xrayexport.spans import (
    ATTRIBUTE_CLOUD_ACCOUNT,
    ATTRIBUTE_CLOUD_PROVIDER,
    ATTRIBUTE_CLOUD_ZONE,
    ATTRIBUTE_CONTAINER_NAME,
    ATTRIBUTE_HOST_ID,
    ATTRIBUTE_K8S_POD,
    ATTRIBUTE_SERVICE_INSTANCE,
    ATTRIBUTE_SERVICE_NAMESPACE,
    Resource,
)

AWS_OPERATION_ATTRIBUTE = "aws.operation"
AWS_ACCOUNT_ATTRIBUTE = "aws.account_id"
AWS_REGION_ATTRIBUTE = "aws.region"
AWS_REQUEST_ID_ATTRIBUTE = "aws.request_id"
AWS_QUEUE_URL_ATTRIBUTE = "aws.queue_url"
AWS_TABLE_NAME_ATTRIBUTE = "aws.table_name"

ORIGIN_EC2 = "AWS::EC2::Instance"
ORIGIN_ECS = "AWS::ECS::Container"
ORIGIN_EB = "AWS::ElasticBeanstalk::Environment"

_AWS_KEYS = {
    AWS_OPERATION_ATTRIBUTE,
    AWS_ACCOUNT_ATTRIBUTE,
    AWS_REGION_ATTRIBUTE,
    AWS_REQUEST_ID_ATTRIBUTE,
    AWS_QUEUE_URL_ATTRIBUTE,
    AWS_TABLE_NAME_ATTRIBUTE,
}

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN, _INT64_MAX = -(2**63), 2**63 - 1


@dataclass
class EC2Metadata:
    instance_id: str
    availability_zone: str

    def to_dict(self) -> Dict[str, str]:
        return {"instance_id": self.instance_id, "availability_zone": self.availability_zone}


@dataclass
class ECSMetadata:
    container_name: str

    def to_dict(self) -> Dict[str, str]:
        return {"container": self.container_name}


@dataclass
class BeanstalkMetadata:
    environment: str
    version_label: str
    deployment_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment_name": self.environment,
            "version_label": self.version_label,
            "deployment_id": self.deployment_id,
        }


@dataclass
class AWSData:
    account_id: str = ""
    beanstalk_metadata: Optional[BeanstalkMetadata] = None
    ecs_metadata: Optional[ECSMetadata] = None
    ec2_metadata: Optional[EC2Metadata] = None
    operation: str = ""
    remote_region: str = ""
    request_id: str = ""
    queue_url: str = ""
    table_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        items: Dict[str, Any] = {
            "account_id": self.account_id,
            "elastic_beanstalk": self.beanstalk_metadata and self.beanstalk_metadata.to_dict(),
            "ecs": self.ecs_metadata and self.ecs_metadata.to_dict(),
            "ec2": self.ec2_metadata and self.ec2_metadata.to_dict(),
            "operation": self.operation,
            "region": self.remote_region,
            "request_id": self.request_id,
            "queue_url": self.queue_url,
            "table_name": self.table_name,
        }
        return {key: value for key, value in items.items() if value}


def _parse_deployment_id(value: str) -> int:
    if not _INT_RE.fullmatch(value):
        return 0
    number = int(value)
    return number if _INT64_MIN <= number <= _INT64_MAX else 0


def make_aws(
    attributes: Dict[str, str], resource: Optional[Resource]
) -> Tuple[Dict[str, str], Optional[AWSData]]:
    """Split AWS attributes off and build AWS data from the resource labels."""
    if resource is None:
        return dict(attributes), None

    labels = resource.labels
    cloud = labels.get(ATTRIBUTE_CLOUD_PROVIDER, "")
    account = labels.get(ATTRIBUTE_CLOUD_ACCOUNT, "")
    zone = labels.get(ATTRIBUTE_CLOUD_ZONE, "")
    host_id = labels.get(ATTRIBUTE_HOST_ID, "")
    container = labels.get(ATTRIBUTE_K8S_POD, "") or labels.get(ATTRIBUTE_CONTAINER_NAME, "")
    namespace = labels.get(ATTRIBUTE_SERVICE_NAMESPACE, "")
    deploy_id = labels.get(ATTRIBUTE_SERVICE_INSTANCE, "")

    filtered = {key: value for key, value in attributes.items() if key not in _AWS_KEYS}
    if attributes.get(AWS_ACCOUNT_ATTRIBUTE):
        account = attributes[AWS_ACCOUNT_ATTRIBUTE]

    if cloud not in ("aws", ""):
        return filtered, None

    # Least to most specific, so the most specific origin wins.
    origin = ""
    ec2 = ecs = ebs = None
    if host_id:
        origin = ORIGIN_EC2
        ec2 = EC2Metadata(instance_id=host_id, availability_zone=zone)
    if container:
        origin = ORIGIN_ECS
        ecs = ECSMetadata(container_name=container)
    if deploy_id:
        origin = ORIGIN_EB
        ebs = BeanstalkMetadata(
            environment=namespace,
            version_label="",
            deployment_id=_parse_deployment_id(deploy_id),
        )
    if not origin:
        return filtered, None

    return filtered, AWSData(
        account_id=account,
        beanstalk_metadata=ebs,
        ecs_metadata=ecs,
        ec2_metadata=ec2,
        operation=attributes.get(AWS_OPERATION_ATTRIBUTE, ""),
        remote_region=attributes.get(AWS_REGION_ATTRIBUTE, ""),
        request_id=attributes.get(AWS_REQUEST_ID_ATTRIBUTE, ""),
        queue_url=attributes.get(AWS_QUEUE_URL_ATTRIBUTE, ""),
        table_name=attributes.get(AWS_TABLE_NAME_ATTRIBUTE, ""),
    )