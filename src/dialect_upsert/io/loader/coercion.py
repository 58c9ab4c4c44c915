"""
Coercion of JSON scalars into typed bind values.

The target column's logical type decides the conversion. A value that does
not fit raises :class:`ApplicationError`, which fails only the record that
carried it. Strings are bound as-is: values reach the database through bind
parameters, never through SQL text, so nothing is escaped here.
"""

import json
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from dialect_upsert.io.loader.models import (
    ApplicationError,
    ColumnMetadata,
    SqlType,
    TypedValue,
)
from dialect_upsert.utils.date_parser import (
    parse_date,
    parse_time,
    parse_timestamp,
    parse_timestamp_tz,
)


@dataclass(frozen=True)
class CoercionFormats:
    """``strptime`` patterns used for temporal columns."""

    date_format: str = "%Y-%m-%d"
    time_format: str = "%H:%M:%S"
    timestamp_format: str = "%Y-%m-%d %H:%M:%S"
    timestamp_tz_format: str = "%Y-%m-%d %H:%M:%S%z"


def compact_json(value: Any) -> str:
    """Serialize to compact JSON text (no insignificant whitespace)."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


class ValueCoercer:
    """Convert raw JSON values into :class:`TypedValue` for a given column."""

    def __init__(self, formats: Optional[CoercionFormats] = None):
        self.formats = formats or CoercionFormats()

    def coerce(self, raw: Any, column: ColumnMetadata) -> TypedValue:
        """
        Coerce ``raw`` into the column's type.

        Args:
            raw: Value taken from the JSON document (None means SQL NULL)
            column: Target column metadata

        Returns:
            TypedValue carrying the column's type, also for NULL

        Raises:
            ApplicationError: If the value cannot be represented in the column
        """
        if raw is None:
            return TypedValue(None, column.sql_type)

        handler = getattr(self, f"_to_{column.sql_type.name.lower()}")
        return TypedValue(handler(raw, column), column.sql_type)

    # Numbers -----------------------------------------------------------------

    def _to_numeric(self, raw: Any, column: ColumnMetadata) -> Any:
        number = self._decimal(raw, column)
        if column.integral:
            if number != number.to_integral_value():
                raise ApplicationError(
                    f"Value '{raw}' is not a whole number for column {column.name}",
                    column.name,
                )
            return int(number)
        return number

    def _to_double(self, raw: Any, column: ColumnMetadata) -> float:
        return float(self._decimal(raw, column))

    @staticmethod
    def _decimal(raw: Any, column: ColumnMetadata) -> Decimal:
        if isinstance(raw, bool) or not isinstance(raw, (int, float, Decimal, str)):
            raise ApplicationError(
                f"Value '{raw}' is not numeric for column {column.name}", column.name
            )
        try:
            number = Decimal(str(raw).strip())
        except InvalidOperation as exc:
            raise ApplicationError(
                f"Value '{raw}' is not numeric for column {column.name}", column.name
            ) from exc
        if not number.is_finite():
            raise ApplicationError(
                f"Value '{raw}' is not a finite number for column {column.name}",
                column.name,
            )
        return number

    # Booleans ----------------------------------------------------------------

    def _to_boolean(self, raw: Any, column: ColumnMetadata) -> bool:
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str) and raw.strip().lower() in ("true", "false"):
            return raw.strip().lower() == "true"
        raise ApplicationError(
            f"Value '{raw}' is not a boolean for column {column.name}", column.name
        )

    # Temporal ----------------------------------------------------------------

    def _to_date(self, raw: Any, column: ColumnMetadata) -> date:
        if isinstance(raw, datetime):
            return raw.date()
        if isinstance(raw, date):
            return raw
        return self._parse(parse_date, raw, self.formats.date_format, column)

    def _to_time(self, raw: Any, column: ColumnMetadata) -> time:
        if isinstance(raw, datetime):
            return raw.time()
        if isinstance(raw, time):
            return raw
        return self._parse(parse_time, raw, self.formats.time_format, column)

    def _to_timestamp(self, raw: Any, column: ColumnMetadata) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, date):
            return datetime.combine(raw, time())
        return self._parse(parse_timestamp, raw, self.formats.timestamp_format, column)

    def _to_timestamp_tz(self, raw: Any, column: ColumnMetadata) -> datetime:
        if isinstance(raw, datetime):
            if raw.tzinfo is None:
                raise ApplicationError(
                    f"Value '{raw}' has no time zone offset for column {column.name}",
                    column.name,
                )
            return raw
        return self._parse(
            parse_timestamp_tz, raw, self.formats.timestamp_tz_format, column
        )

    @staticmethod
    def _parse(parser, raw: Any, fmt: str, column: ColumnMetadata):
        if not isinstance(raw, str):
            raise ApplicationError(
                f"Value '{raw}' is not a string for temporal column {column.name}",
                column.name,
            )
        try:
            return parser(raw, fmt)
        except ValueError as exc:
            raise ApplicationError(f"{exc} for column {column.name}", column.name) from exc

    # Text, binary and JSON ---------------------------------------------------

    def _to_varchar(self, raw: Any, column: ColumnMetadata) -> str:
        return self._text(raw)

    def _to_text(self, raw: Any, column: ColumnMetadata) -> str:
        return self._text(raw)

    @staticmethod
    def _text(raw: Any) -> str:
        if isinstance(raw, str):
            return raw
        if isinstance(raw, (dict, list, bool, int, float)):
            return compact_json(raw)
        return str(raw)

    def _to_binary(self, raw: Any, column: ColumnMetadata) -> bytes:
        if isinstance(raw, (bytes, bytearray)):
            return bytes(raw)
        return self._text(raw).encode("utf-8")

    def _to_json(self, raw: Any, column: ColumnMetadata) -> str:
        return compact_json(raw)
