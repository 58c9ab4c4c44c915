"""
DataFrame ingestion for the upsert engine.

Rows become :class:`InputRecord` instances; pandas missing values (NaN, NaT,
``pd.NA``) become ``None`` so they bind as typed NULLs, and numpy / pandas
scalars are unwrapped into plain Python values.
"""

from typing import Any, Hashable, List, Optional

import pandas as pd

from dialect_upsert.io.loader.models import InputRecord


def _to_python(value: Any) -> Any:
    """Convert a DataFrame cell into a JSON-like Python value."""
    if isinstance(value, (list, dict, tuple)):
        return list(value) if isinstance(value, tuple) else value
    try:
        if pd.isna(value):
            return None
    except (ValueError, TypeError):
        # pd.isna is ambiguous for array-likes; keep the value
        return value

    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        # numpy scalar -> Python scalar
        return value.item()
    return value


def records_from_dataframe(
    df: pd.DataFrame,
    id_column: Optional[Hashable] = None,
    unit_column: Optional[Hashable] = None,
) -> List[InputRecord]:
    """
    Turn DataFrame rows into input records.

    Args:
        df: Source rows; column names are matched against the table catalog
        id_column: Column holding the document id; the row index is used if None
        unit_column: Column holding the commit unit for commit-by-profile

    Returns:
        One InputRecord per row, in row order

    Raises:
        KeyError: If ``id_column`` or ``unit_column`` is not a DataFrame column
    """
    for column in (id_column, unit_column):
        if column is not None and column not in df.columns:
            raise KeyError(f"Column {column!r} not found in DataFrame")

    records = []
    for index, row in zip(df.index, df.to_dict(orient="records")):
        fields = {str(name): _to_python(value) for name, value in row.items()}
        document_id = fields[str(id_column)] if id_column is not None else index
        unit_id = fields[str(unit_column)] if unit_column is not None else None
        records.append(
            InputRecord(
                document_id=str(document_id),
                fields=fields,
                unit_id=str(unit_id) if unit_id is not None else None,
            )
        )
    return records
