import io
import logging
import time
from datetime import date, datetime
from datetime import time as dt_time
from typing import Any, Callable, Dict, Iterable, List

import numpy as np
import pandas as pd

from converters.errors import EncodingError, MalformedInputError
from converters.model import Row, Sheet, Workbook, cell_text, column_names

logger = logging.getLogger(__name__)

EMPTY_HEADER = "__EMPTY"


def to_native(value: Any) -> Any:
    """
    Convert a pandas/numpy cell into a plain Python scalar.

    Args:
        value: Cell as produced by pandas

    Returns:
        Any: None for NaN/NaT, ISO-8601 text for timestamps, builtin
        int/float/bool/str otherwise
    """
    if pd.api.types.is_scalar(value) and pd.isna(value):
        return None
    if isinstance(value, (pd.Timestamp, datetime, date, dt_time)):
        return value.isoformat()
    if isinstance(value, np.generic):
        return value.item()
    return value


def _sheet_value(value: Any) -> Any:
    value = to_native(value)
    # Spreadsheets store every number as a double
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def frame_to_rows(df: pd.DataFrame, convert: Callable[[Any], Any] = to_native) -> List[Row]:
    """
    Turn a DataFrame into a list of records keyed by (stringified) column name.

    ``itertuples`` is used instead of ``iterrows`` so that per-column dtypes
    survive; ``iterrows`` upcasts mixed int/float rows to float.
    """
    columns = [str(col) for col in df.columns]
    rows = []
    for record in df.itertuples(index=False, name=None):
        rows.append({col: convert(value) for col, value in zip(columns, record)})
    return rows


def _header_labels(values: Iterable[Any]) -> List[str]:
    labels = []
    seen: Dict[str, int] = {}
    for value in values:
        label = cell_text(to_native(value)) or EMPTY_HEADER
        if label in seen:
            seen[label] += 1
            label = f"{label}_{seen[label]}"
        else:
            seen[label] = 0
        labels.append(label)
    return labels


def promote_header(df: pd.DataFrame) -> pd.DataFrame:
    """
    Use the first populated row of a headerless frame as its column names.

    Rows and columns without any value are dropped first, so a table may
    start anywhere on the sheet. Blank header cells are named ``__EMPTY``
    and repeated names get a ``_<n>`` suffix.

    Args:
        df: Frame read with ``header=None``

    Returns:
        pd.DataFrame: The records below the header row, empty if there are none
    """
    df = df.dropna(how="all").dropna(axis=1, how="all")
    if df.empty:
        return pd.DataFrame()
    body = df.iloc[1:].copy()
    body.columns = _header_labels(df.iloc[0])
    return body


def _excel_value(value: Any) -> Any:
    # openpyxl cannot store containers
    if isinstance(value, (dict, list)):
        return cell_text(value)
    return value


def rows_to_frame(sheet: Sheet) -> pd.DataFrame:
    """Build a DataFrame from a sheet using the first row's keys as columns."""
    columns = column_names(sheet)
    data = [[_excel_value(row.get(col)) for col in columns] for row in sheet.rows]
    return pd.DataFrame(data, columns=columns)


def decode(content: bytes) -> Workbook:
    """
    Parse a spreadsheet container into a Workbook.

    Every sheet becomes a Sheet in workbook order. The first populated row
    of each sheet is the header row, wherever it starts, and blank rows
    are skipped; an empty sheet yields zero rows.

    Args:
        content: Raw bytes of the uploaded workbook

    Returns:
        Workbook: Decoded workbook

    Raises:
        MalformedInputError: If the bytes are not a readable spreadsheet
    """
    try:
        logger.debug("Attempting to read Excel workbook", extra={"size_bytes": len(content)})
        start_time = time.time()
        # Cell values stay as openpyxl returns them; only empty cells become NaN
        frames = pd.read_excel(
            io.BytesIO(content),
            sheet_name=None,
            header=None,
            dtype=object,
            keep_default_na=False,
            na_values=[""],
        )
        read_time = time.time() - start_time
    except Exception as e:
        logger.error(
            "Failed to read Excel workbook",
            extra={"error": str(e), "error_type": type(e).__name__}
        )
        raise MalformedInputError(
            f"Failed to read Excel file: {str(e)}",
            details={"error_type": type(e).__name__}
        ) from e

    sheets = [
        Sheet(name=str(name), rows=frame_to_rows(promote_header(df), convert=_sheet_value))
        for name, df in frames.items()
    ]
    logger.info(
        "Successfully read Excel workbook",
        extra={
            "sheet_names": [sheet.name for sheet in sheets],
            "read_time_seconds": f"{read_time:.2f}"
        }
    )
    return Workbook(sheets=sheets)


def encode(workbook: Workbook) -> bytes:
    """
    Write a Workbook as an xlsx file.

    Sheets keep their order and the header row follows the insertion order of
    the first row's keys. Sheets sharing a name collapse to the last one.

    Args:
        workbook: Workbook to serialise

    Returns:
        bytes: xlsx file content

    Raises:
        EncodingError: If there is nothing to write or openpyxl rejects the data
    """
    if not workbook.sheets:
        raise EncodingError("Cannot write an Excel file without any sheets")

    buffer = io.BytesIO()
    try:
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            for name, rows in workbook.as_mapping().items():
                rows_to_frame(Sheet(name=name, rows=rows)).to_excel(writer, sheet_name=name, index=False)
    except Exception as e:
        logger.error(
            "Failed to write Excel workbook",
            extra={"error": str(e), "error_type": type(e).__name__}
        )
        raise EncodingError(f"Failed to write Excel file: {str(e)}") from e

    return buffer.getvalue()


def encode_sheet_as_delimited_text(sheet: Sheet) -> str:
    """
    Export one sheet as CSV text, quoting fields that need it.

    Args:
        sheet: Sheet to export

    Returns:
        str: Header line plus one line per record, empty for a sheet without rows
    """
    if not sheet.rows:
        return ""
    columns = column_names(sheet)
    data = [[cell_text(row.get(col)) for col in columns] for row in sheet.rows]
    return pd.DataFrame(data, columns=columns).to_csv(index=False, lineterminator="\n")
