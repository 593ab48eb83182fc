# Copyright 2020-present Kensho Technologies, LLC.
"""Request bodies of the query endpoint."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import funcy


ANNOTATION_DATATYPE = "datatype"
ANNOTATION_GROUP = "group"
ANNOTATION_DEFAULT = "default"
ALL_ANNOTATIONS = (ANNOTATION_DATATYPE, ANNOTATION_GROUP, ANNOTATION_DEFAULT)

DATE_TIME_FORMAT_RFC3339 = "RFC3339"
DATE_TIME_FORMAT_RFC3339_NANO = "RFC3339Nano"

QUERY_TYPE_FLUX = "flux"


@dataclass(frozen=True)
class Dialect:
    """The CSV dialect the server should use for the query response."""

    header: bool = True
    delimiter: str = ","
    annotations: Tuple[str, ...] = field(default=ALL_ANNOTATIONS)
    comment_prefix: str = "#"
    date_time_format: str = DATE_TIME_FORMAT_RFC3339

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON-serializable form of the dialect."""
        return {
            "header": self.header,
            "delimiter": self.delimiter,
            "annotations": list(self.annotations),
            "commentPrefix": self.comment_prefix,
            "dateTimeFormat": self.date_time_format,
        }


DEFAULT_DIALECT = Dialect()


@dataclass(frozen=True)
class Query:
    """A Flux query, as sent to the query endpoint."""

    query: str
    dialect: Optional[Dialect] = None
    type: str = QUERY_TYPE_FLUX

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON-serializable form of the query, leaving out unset fields."""
        return funcy.select_values(
            lambda value: value is not None,
            {
                "query": self.query,
                "type": self.type,
                "dialect": None if self.dialect is None else self.dialect.to_dict(),
            },
        )
