# Copyright 2018-present Kensho Technologies, LLC.
import datetime
from decimal import Decimal
from typing import List
import unittest

from ..exceptions import FluxInvalidArgumentError
from ..query_formatting import (
    TimeUnit,
    escape_flux_string,
    quote_flux_string,
    represent_datetime,
    represent_duration,
    represent_flux_value,
    represent_timedelta,
)
from ..query_formatting.representations import represent_float_as_str
from ..restrictions import Restrictions


def _unquote_flux_string(literal: str) -> str:
    """Read back the raw string of a double-quoted Flux string literal."""
    if len(literal) < 2 or not (literal.startswith('"') and literal.endswith('"')):
        raise AssertionError("Not a double-quoted string literal: {}".format(literal))

    body = literal[1:-1]
    characters: List[str] = []
    index = 0
    while index < len(body):
        if body[index] == "\\":
            escaped = body[index + 1]
            if escaped not in ("\\", '"', "$"):
                raise AssertionError("Unknown escape sequence in: {}".format(literal))
            characters.append(escaped)
            index += 2
        elif body[index] == '"' or body.startswith("${", index):
            raise AssertionError("Unescaped special sequence in: {}".format(literal))
        else:
            characters.append(body[index])
            index += 1
    return "".join(characters)


class FluxStringEscapingTests(unittest.TestCase):
    def test_escape_flux_string(self) -> None:
        test_data = {
            "": "",
            "telegraf": "telegraf",
            '"leading-double-quote': '\\"leading-double-quote',
            'mid-double-"-quote': 'mid-double-\\"-quote',
            "backslashes: \\": "backslashes: \\\\",
            "single-quote: '": "single-quote: '",
            "unicode-snowman: ☃": "unicode-snowman: ☃",
            "tab-and-newline: \t\n": "tab-and-newline: \t\n",
            # Flux interpolates ${...} inside string literals, so it must not be left as is.
            "injection: ${r._value}": "injection: \\${r._value}",
            "dollar-without-brace: $5": "dollar-without-brace: $5",
        }

        for input_data, expected_value in test_data.items():
            self.assertEqual(expected_value, escape_flux_string(input_data))
            self.assertEqual('"' + expected_value + '"', quote_flux_string(input_data))

    def test_quote_gets_exactly_one_escaping_backslash(self) -> None:
        quoted = quote_flux_string('say "hi"')
        self.assertEqual('"say \\"hi\\""', quoted)
        self.assertEqual(2, quoted.count("\\"))

    def test_quoted_string_reads_back_unchanged(self) -> None:
        test_data = [
            "",
            "telegraf",
            'say "hi"',
            "C:\\path\\to\\",
            "${r._value}",
            "\\${r._value}",
            "$${nested}",
            '\\"',
            'mixed \\"${a}" \\\\ "${b}',
            "trailing-dollar $",
            "unicode-snowman: ☃\n",
        ]
        for input_data in test_data:
            self.assertEqual(input_data, _unquote_flux_string(quote_flux_string(input_data)))

    def test_escape_non_string(self) -> None:
        with self.assertRaises(FluxInvalidArgumentError):
            escape_flux_string(123)  # type: ignore[arg-type]


class FluxScalarRepresentationTests(unittest.TestCase):
    def test_represent_float(self) -> None:
        test_data = {
            0.0: "0.0",
            1.5: "1.5",
            -2.25: "-2.25",
            100.0: "100.0",
            0.1: "0.1",
            1e20: "100000000000000000000.0",
            1.5e-7: "0.00000015",
        }
        for input_data, expected_value in test_data.items():
            self.assertEqual(expected_value, represent_float_as_str(input_data))

    def test_represent_decimal(self) -> None:
        self.assertEqual("1.50", represent_float_as_str(Decimal("1.50")))
        self.assertEqual("12.0", represent_float_as_str(Decimal("12")))

    def test_float_without_representation(self) -> None:
        invalid_values = [float("nan"), float("inf"), float("-inf"), Decimal("NaN"), True, 1]
        for invalid_value in invalid_values:
            with self.assertRaises(FluxInvalidArgumentError):
                represent_float_as_str(invalid_value)  # type: ignore[arg-type]

    def test_represent_scalars(self) -> None:
        self.assertEqual("42", represent_flux_value(42))
        self.assertEqual("-7", represent_flux_value(-7))
        self.assertEqual("true", represent_flux_value(True))
        self.assertEqual("false", represent_flux_value(False))
        self.assertEqual("3.14159", represent_flux_value(3.14159))

    def test_strings_are_only_quoted_on_request(self) -> None:
        self.assertEqual("now()", represent_flux_value("now()"))
        self.assertEqual('"now()"', represent_flux_value("now()", quote_strings=True))

    def test_unsupported_type(self) -> None:
        for invalid_value in [object(), b"bytes", None, datetime.date(2018, 11, 9)]:
            with self.assertRaises(FluxInvalidArgumentError):
                represent_flux_value(invalid_value)


class FluxDurationRepresentationTests(unittest.TestCase):
    def test_represent_duration(self) -> None:
        self.assertEqual("5m", represent_duration(5, TimeUnit.MINUTES))
        self.assertEqual("-1h", represent_duration(-1, "h"))
        self.assertEqual("10s", represent_duration(10, "s"))
        self.assertEqual("3mo", represent_duration(3, TimeUnit.MONTHS))
        self.assertEqual("250ns", represent_duration(250, "ns"))

    def test_invalid_duration(self) -> None:
        with self.assertRaises(FluxInvalidArgumentError):
            represent_duration(5, "fortnights")
        with self.assertRaises(FluxInvalidArgumentError):
            represent_duration(1.5, "h")  # type: ignore[arg-type]
        with self.assertRaises(FluxInvalidArgumentError):
            represent_duration(True, "h")  # type: ignore[arg-type]

    def test_represent_timedelta(self) -> None:
        test_data = {
            datetime.timedelta(0): "0s",
            datetime.timedelta(minutes=5): "5m",
            datetime.timedelta(minutes=90): "1h30m",
            datetime.timedelta(days=14): "14d",
            datetime.timedelta(hours=-1): "-1h",
            datetime.timedelta(
                days=1, hours=2, minutes=3, seconds=4, milliseconds=5, microseconds=6
            ): "1d2h3m4s5ms6us",
        }
        for input_data, expected_value in test_data.items():
            self.assertEqual(expected_value, represent_timedelta(input_data))
            self.assertEqual(expected_value, represent_flux_value(input_data))


class FluxTimeRepresentationTests(unittest.TestCase):
    def test_represent_naive_datetime(self) -> None:
        test_data = {
            datetime.datetime(2018, 11, 9, 12, 0, 0): "2018-11-09T12:00:00Z",
            datetime.datetime(2018, 11, 9, 12, 0, 0, 123000): "2018-11-09T12:00:00.123Z",
            datetime.datetime(2018, 11, 9, 12, 0, 0, 123456): "2018-11-09T12:00:00.123456Z",
            datetime.datetime(999, 1, 2, 3, 4, 5): "0999-01-02T03:04:05Z",
            datetime.datetime(1, 1, 1): "0001-01-01T00:00:00Z",
        }
        for input_data, expected_value in test_data.items():
            self.assertEqual(expected_value, represent_datetime(input_data))

    def test_represent_aware_datetime_in_utc(self) -> None:
        plus_two_hours = datetime.timezone(datetime.timedelta(hours=2))
        value = datetime.datetime(2018, 11, 9, 14, 30, 0, tzinfo=plus_two_hours)
        self.assertEqual("2018-11-09T12:30:00Z", represent_datetime(value))

    def test_represent_datetime_string(self) -> None:
        self.assertEqual("2018-11-09T12:00:00Z", represent_datetime("2018-11-09T12:00:00Z"))
        self.assertEqual("2018-11-09T10:00:00Z", represent_datetime("2018-11-09T12:00:00+02:00"))

    def test_invalid_datetime(self) -> None:
        with self.assertRaises(FluxInvalidArgumentError):
            represent_datetime("yesterday")
        with self.assertRaises(FluxInvalidArgumentError):
            represent_datetime(1541764800)  # type: ignore[arg-type]


class FluxCompositeRepresentationTests(unittest.TestCase):
    def test_represent_arrays(self) -> None:
        self.assertEqual('["_value", "_time"]', represent_flux_value(["_value", "_time"]))
        self.assertEqual('[1, "a", true, 2.5]', represent_flux_value((1, "a", True, 2.5)))
        self.assertEqual("[]", represent_flux_value([]))

    def test_sets_are_sorted(self) -> None:
        self.assertEqual('["a", "b", "c"]', represent_flux_value({"c", "a", "b"}))
        self.assertEqual('["host"]', represent_flux_value(frozenset({"host"})))

    def test_represent_records(self) -> None:
        self.assertEqual(
            '{_value: "water_level"}', represent_flux_value({"_value": "water_level"})
        )
        self.assertEqual(
            '{a: 1, b: ["x", "y"]}', represent_flux_value({"a": 1, "b": ["x", "y"]})
        )

    def test_invalid_record_keys(self) -> None:
        for invalid_key in ["", "bad key", "1st", "quote\""]:
            with self.assertRaises(FluxInvalidArgumentError):
                represent_flux_value({invalid_key: "value"})

    def test_nested_invalid_value(self) -> None:
        with self.assertRaises(FluxInvalidArgumentError):
            represent_flux_value([1, float("nan")])

    def test_represent_restriction(self) -> None:
        restriction = Restrictions.measurement().equal("cpu")
        self.assertEqual('r["_measurement"] == "cpu"', represent_flux_value(restriction))
