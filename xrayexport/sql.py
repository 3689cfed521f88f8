"""SQL section of an X-Ray segment."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from xrayexport.spans import (
    ATTRIBUTE_COMPONENT,
    ATTRIBUTE_DB_INSTANCE,
    ATTRIBUTE_DB_STATEMENT,
    ATTRIBUTE_DB_TYPE,
    ATTRIBUTE_DB_URL,
    ATTRIBUTE_DB_USER,
    COMPONENT_TYPE_GRPC,
    COMPONENT_TYPE_HTTP,
)

_SQL_KEYS = {
    ATTRIBUTE_DB_URL,
    ATTRIBUTE_DB_TYPE,
    ATTRIBUTE_DB_INSTANCE,
    ATTRIBUTE_DB_STATEMENT,
    ATTRIBUTE_DB_USER,
}


@dataclass
class SQLData:
    connection_string: str = ""
    url: str = ""
    database_type: str = ""
    database_version: str = ""
    driver_version: str = ""
    user: str = ""
    preparation: str = ""
    sanitized_query: str = ""

    def to_dict(self) -> Dict[str, str]:
        items = {
            "connection_string": self.connection_string,
            "url": self.url,
            "database_type": self.database_type,
            "database_version": self.database_version,
            "driver_version": self.driver_version,
            "user": self.user,
            "preparation": self.preparation,
            "sanitized_query": self.sanitized_query,
        }
        return {key: value for key, value in items.items() if value}


def make_sql(attributes: Dict[str, str]) -> Tuple[Dict[str, str], Optional[SQLData]]:
    """Split database attributes off into SQL data unless the span is HTTP or gRPC."""
    component = attributes.get(ATTRIBUTE_COMPONENT, "")
    if component in (COMPONENT_TYPE_HTTP, COMPONENT_TYPE_GRPC):
        return dict(attributes), None

    filtered = {key: value for key, value in attributes.items() if key not in _SQL_KEYS}
    db_url = attributes.get(ATTRIBUTE_DB_URL, "") or "localhost"
    sql = SQLData(
        url=f"{db_url}/{attributes.get(ATTRIBUTE_DB_INSTANCE, '')}",
        database_type=attributes.get(ATTRIBUTE_DB_TYPE, ""),
        user=attributes.get(ATTRIBUTE_DB_USER, ""),
        sanitized_query=attributes.get(ATTRIBUTE_DB_STATEMENT, ""),
    )
    return filtered, sql