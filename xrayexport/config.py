"""Configuration of the X-Ray exporter."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

TYPE_STR = "awsxray"

_KEY_TO_FIELD = {
    "num_workers": "number_of_workers",
    "endpoint": "endpoint",
    "request_timeout_seconds": "request_timeout_seconds",
    "max_retries": "max_retries",
    "no_verify_ssl": "no_verify_ssl",
    "proxy_address": "proxy_address",
    "region": "region",
    "local_mode": "local_mode",
    "resource_arn": "resource_arn",
    "role_arn": "role_arn",
}


@dataclass
class Config:
    """Settings of one X-Ray exporter instance."""

    name: str = TYPE_STR
    type: str = TYPE_STR
    number_of_workers: int = 8
    endpoint: str = ""
    request_timeout_seconds: int = 30
    max_retries: int = 2
    no_verify_ssl: bool = False
    proxy_address: str = ""
    region: str = ""
    local_mode: bool = False
    resource_arn: str = ""
    role_arn: str = ""

    @classmethod
    def from_mapping(cls, name: str, mapping: Optional[Mapping[str, Any]]) -> "Config":
        """Build a config named ``name`` from its configuration entries over the defaults."""
        exporter_type = name.split("/", 1)[0]
        if exporter_type != TYPE_STR:
            raise ValueError(f"exporter {name!r} is not of type {TYPE_STR!r}")

        config = cls(name=name, type=TYPE_STR)
        field_types = {item.name: item.type for item in fields(cls)}
        for key, value in (mapping or {}).items():
            attribute = _KEY_TO_FIELD.get(key)
            if attribute is None:
                raise ValueError(f"unknown setting {key!r} for exporter {name!r}")
            expected = field_types[attribute]
            expected_type = {"int": int, "bool": bool, "str": str}.get(
                expected if isinstance(expected, str) else expected.__name__
            )
            if expected_type is int and (isinstance(value, bool) or not isinstance(value, int)):
                raise TypeError(f"setting {key!r} must be an integer")
            if expected_type is not int and not isinstance(value, expected_type):
                raise TypeError(f"setting {key!r} must be of type {expected_type.__name__}")
            setattr(config, attribute, value)
        return config