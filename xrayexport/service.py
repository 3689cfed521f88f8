"""Service section of an X-Ray segment."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from xrayexport.spans import ATTRIBUTE_CONTAINER_TAG, ATTRIBUTE_SERVICE_VERSION, Resource


@dataclass
class ServiceData:
    version: str = ""
    compiler_version: str = ""
    compiler: str = ""

    def to_dict(self) -> Dict[str, str]:
        items = {
            "version": self.version,
            "compiler_version": self.compiler_version,
            "compiler": self.compiler,
        }
        return {key: value for key, value in items.items() if value}


def make_service(resource: Optional[Resource]) -> Optional[ServiceData]:
    """Build service data from the resource's service version or container tag."""
    if resource is None:
        return None
    labels = resource.labels
    if ATTRIBUTE_SERVICE_VERSION in labels:
        version = labels[ATTRIBUTE_SERVICE_VERSION]
    else:
        version = labels.get(ATTRIBUTE_CONTAINER_TAG, "")
    if not version:
        return None
    return ServiceData(version=version)