"""Cause section of an X-Ray segment, built from a span's error status."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from xrayexport.spans import (
    ATTRIBUTE_HTTP_STATUS_TEXT,
    Status,
    http_status_from_status_code,
    new_segment_id,
)


@dataclass
class StackFrame:
    path: str = ""
    line: int = 0
    label: str = ""

    def to_dict(self) -> Dict[str, Any]:
        items: Dict[str, Any] = {"path": self.path, "line": self.line, "label": self.label}
        return {key: value for key, value in items.items() if value}


@dataclass
class ExceptionData:
    id: str = ""
    type: str = ""
    message: str = ""
    stack: List[StackFrame] = field(default_factory=list)
    remote: bool = False

    def to_dict(self) -> Dict[str, Any]:
        items: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "stack": [frame.to_dict() for frame in self.stack],
            "remote": self.remote,
        }
        return {key: value for key, value in items.items() if value}


@dataclass
class CauseData:
    working_directory: str = ""
    paths: List[str] = field(default_factory=list)
    exceptions: List[ExceptionData] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        items: Dict[str, Any] = {
            "working_directory": self.working_directory,
            "paths": list(self.paths),
            "exceptions": [exception.to_dict() for exception in self.exceptions],
        }
        return {key: value for key, value in items.items() if value}


def is_client_error(code: int) -> bool:
    """Tell whether a span status code maps to an HTTP 4xx status."""
    return 400 <= http_status_from_status_code(code) < 500


def make_cause(
    status: Optional[Status], attributes: Dict[str, str]
) -> Tuple[bool, bool, Dict[str, str], Optional[CauseData]]:
    """Return (is_error, is_fault, remaining attributes, cause) for a span status."""
    if status is None or status.code == 0:
        return False, False, dict(attributes), None

    message = status.message
    filtered: Dict[str, str] = {}
    for key, value in attributes.items():
        if key == ATTRIBUTE_HTTP_STATUS_TEXT:
            if not message:
                message = value
        else:
            filtered[key] = value

    cause = None
    if message:
        cause = CauseData(
            exceptions=[ExceptionData(id=new_segment_id().hex(), type="", message=message)]
        )

    if is_client_error(status.code):
        return True, False, filtered, cause
    return False, True, filtered, cause