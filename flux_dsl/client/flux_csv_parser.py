# Copyright 2020-present Kensho Technologies, LLC.
"""Parser of the annotated CSV returned by the query endpoint.

A response contains one or more tables. Each table may start with annotation rows, followed by
a header row and the data rows. The first cell of every row is reserved for annotation names:

    #datatype,string,long,dateTime:RFC3339,double,string
    #group,false,false,false,false,true
    #default,_result,,,,
    ,result,table,_time,_value,_field
    ,,0,2020-02-17T22:19:49.747562847Z,10,usage_system
    ,,1,2020-02-17T22:19:49.747562847Z,2.5,usage_user

A blank row separates consecutive tables, and a change in the "table" column of the data rows
also starts a new table. Queries that fail while streaming their results end with an error
table whose header is "error,reference".
"""
import base64
import csv
from dataclasses import dataclass, field, replace
import logging
import re
from typing import Any, Dict, Iterable, Iterator, List, Optional

from ciso8601 import parse_datetime  # pylint: disable=no-name-in-module

from ..exceptions import FluxCsvParserError, FluxQueryError


logger = logging.getLogger(__name__)

DATATYPE_ANNOTATION = "#datatype"
GROUP_ANNOTATION = "#group"
DEFAULT_ANNOTATION = "#default"

TABLE_COLUMN = "table"
ERROR_TABLE_HEADER = ["error", "reference"]

DEFAULT_DATA_TYPE = "string"

_NANOSECONDS_PER_DURATION_UNIT = {
    "ns": 1,
    "us": 10 ** 3,
    "µs": 10 ** 3,
    "ms": 10 ** 6,
    "s": 10 ** 9,
    "m": 60 * 10 ** 9,
    "h": 60 * 60 * 10 ** 9,
    "d": 24 * 60 * 60 * 10 ** 9,
    "w": 7 * 24 * 60 * 60 * 10 ** 9,
}
# Longer suffixes come first, so that "ms" is not read as "m" followed by a stray "s".
_DURATION_COMPONENT_PATTERN = re.compile(r"(\d+)(ns|us|µs|ms|s|m|h|d|w)")


@dataclass
class FluxColumn:
    """A column of a result table, as described by its annotations and header."""

    index: int
    label: str = ""
    data_type: str = DEFAULT_DATA_TYPE
    group: bool = False
    default_value: str = ""


class FluxRecord(object):
    """A single row of a result table."""

    def __init__(self, table: int, values: Optional[Dict[str, Any]] = None) -> None:
        """Construct a FluxRecord of the table with the given index in the response."""
        self.table = table
        self.values: Dict[str, Any] = {} if values is None else values

    def get_start(self) -> Any:
        """Return the inclusive lower time bound of the record's table."""
        return self.values.get("_start")

    def get_stop(self) -> Any:
        """Return the exclusive upper time bound of the record's table."""
        return self.values.get("_stop")

    def get_time(self) -> Any:
        return self.values.get("_time")

    def get_value(self) -> Any:
        return self.values.get("_value")

    def get_field(self) -> Any:
        return self.values.get("_field")

    def get_measurement(self) -> Any:
        return self.values.get("_measurement")

    def __getitem__(self, key: str) -> Any:
        """Return the value of the named column."""
        return self.values[key]

    def __eq__(self, other: Any) -> bool:
        """Return True if the other object is a record of the same table with the same values."""
        if not isinstance(other, FluxRecord):
            return False
        return self.table == other.table and self.values == other.values

    def __ne__(self, other: Any) -> bool:
        """Check another object for non-equality against this one."""
        return not self.__eq__(other)

    def __repr__(self) -> str:
        """Return a human-readable representation of the record."""
        return "FluxRecord(table={}, values={})".format(self.table, self.values)


@dataclass
class FluxTable:
    """A result table: its columns, and the records parsed so far."""

    columns: List[FluxColumn]
    records: List[FluxRecord] = field(default_factory=list)

    def get_group_key(self) -> List[FluxColumn]:
        """Return the columns that are part of the table's group key."""
        return [column for column in self.columns if column.group]


def parse_duration_as_nanoseconds(raw_value: str) -> int:
    """Return the number of nanoseconds in a duration like "1h30m", or in a plain integer."""
    sign = -1 if raw_value.startswith("-") else 1
    body = raw_value[1:] if sign == -1 else raw_value
    if body.isdigit():
        return sign * int(body)

    total = 0
    position = 0
    for match in _DURATION_COMPONENT_PATTERN.finditer(body):
        if match.start() != position:
            break
        amount, unit = match.groups()
        total += int(amount) * _NANOSECONDS_PER_DURATION_UNIT[unit]
        position = match.end()

    if not body or position != len(body):
        raise FluxCsvParserError(
            "Cannot convert the duration {} to a fixed number of nanoseconds.".format(raw_value)
        )
    return sign * total


def _parse_boolean(raw_value: str) -> bool:
    if raw_value == "true":
        return True
    elif raw_value == "false":
        return False
    else:
        raise ValueError("Expected true or false, got: {}".format(raw_value))


_CONVERTERS = {
    "string": str,
    "long": int,
    "unsignedLong": int,
    "double": float,  # Also handles "+Inf", "-Inf" and "NaN".
    "boolean": _parse_boolean,
    "dateTime:RFC3339": parse_datetime,
    "dateTime:RFC3339Nano": parse_datetime,
    "duration": parse_duration_as_nanoseconds,
    "base64Binary": base64.b64decode,
}


def convert_value(column: FluxColumn, raw_value: str) -> Any:
    """Return the Python value of a cell, falling back to the column's default when it is empty.

    Cells of unknown data types are returned as strings.
    """
    if raw_value == "":
        raw_value = column.default_value
        if raw_value == "":
            return None

    converter = _CONVERTERS.get(column.data_type, str)
    try:
        return converter(raw_value)
    except ValueError as e:
        raise FluxCsvParserError(
            "Invalid {} value {} in column {}: {}".format(
                column.data_type, raw_value, column.label, e
            )
        )


class FluxCsvParser(object):
    """Incremental parser of an annotated CSV query response."""

    def __init__(self, lines: Iterable[str], keep_records: bool = True) -> None:
        """Construct a parser over the lines of the response.

        Args:
            lines: iterable of CSV lines, e.g. the response text split into lines
            keep_records: whether the parsed records should also be collected into their tables.
                          Streaming consumers of generate_records() can turn this off to avoid
                          holding the whole response in memory.
        """
        self._lines = lines
        self._keep_records = keep_records
        self.tables: List[FluxTable] = []

    @classmethod
    def from_text(cls, text: str, keep_records: bool = True) -> "FluxCsvParser":
        """Construct a parser over the full text of a response."""
        return cls(text.splitlines(), keep_records=keep_records)

    def parse_tables(self) -> List[FluxTable]:
        """Parse the whole response, and return its tables with their records."""
        for _ in self.generate_records():
            pass
        return self.tables

    def generate_records(self) -> Iterator[FluxRecord]:
        """Yield the records of the response as they are parsed.

        Each table is appended to the tables attribute as soon as its header is read.

        Raises:
            FluxQueryError: if the response ends with an error table
            FluxCsvParserError: if the response is not valid annotated CSV
        """
        columns: List[FluxColumn] = []
        table: Optional[FluxTable] = None
        table_id: Optional[str] = None
        in_annotations = False
        expecting_header = True
        is_error_table = False
        offset = 0

        for row in csv.reader(self._lines):
            if not any(row):
                # A blank row ends the current table.
                columns = []
                in_annotations = False
                expecting_header = True
                continue

            if row[0].startswith("#"):
                if not in_annotations:
                    columns = [FluxColumn(index=index) for index in range(len(row) - 1)]
                    in_annotations = True
                    expecting_header = True
                self._apply_annotation(columns, row)
                continue

            if expecting_header:
                offset = 1 if in_annotations or row[0] == "" else 0
                labels = row[offset:]
                if not columns:
                    columns = [FluxColumn(index=index) for index in range(len(labels))]
                if len(labels) != len(columns):
                    raise FluxCsvParserError(
                        "The header {} does not match the {} annotated columns.".format(
                            labels, len(columns)
                        )
                    )
                for column, label in zip(columns, labels):
                    column.label = label

                in_annotations = False
                expecting_header = False
                is_error_table = labels == ERROR_TABLE_HEADER
                table_id = None
                if not is_error_table:
                    table = FluxTable(columns)
                    self.tables.append(table)
                    logger.debug("Parsing result table %s: %s", len(self.tables) - 1, labels)
                continue

            cells = row[offset:]
            if len(cells) != len(columns):
                raise FluxCsvParserError(
                    "Expected {} cells in the row, got {}: {}".format(len(columns), len(cells), row)
                )

            if is_error_table:
                message, reference = cells
                raise FluxQueryError(
                    message or "The query failed while its results were being streamed.",
                    reference=reference or None,
                )
            if table is None:
                raise AssertionError(
                    "Unreachable state reached: data row without a table: {}".format(row)
                )

            values = {
                column.label: convert_value(column, cell) for column, cell in zip(columns, cells)
            }

            current_table_id = values.get(TABLE_COLUMN)
            if current_table_id is not None:
                current_table_id = str(current_table_id)
                if table_id is not None and current_table_id != table_id:
                    table = FluxTable([replace(column) for column in columns])
                    self.tables.append(table)
                table_id = current_table_id

            record = FluxRecord(len(self.tables) - 1, values)
            if self._keep_records:
                table.records.append(record)
            yield record

    @staticmethod
    def _apply_annotation(columns: List[FluxColumn], row: List[str]) -> None:
        annotation, cells = row[0], row[1:]
        if len(cells) != len(columns):
            raise FluxCsvParserError(
                "The {} annotation has {} cells, expected {}.".format(
                    annotation, len(cells), len(columns)
                )
            )

        if annotation == DATATYPE_ANNOTATION:
            for column, data_type in zip(columns, cells):
                column.data_type = data_type
        elif annotation == GROUP_ANNOTATION:
            for column, group in zip(columns, cells):
                column.group = group == "true"
        elif annotation == DEFAULT_ANNOTATION:
            for column, default_value in zip(columns, cells):
                column.default_value = default_value
        else:
            logger.debug("Ignoring unknown annotation %s.", annotation)
