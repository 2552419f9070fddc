import io
import logging
from enum import Enum
from typing import List

import pandas as pd

from converters.errors import MalformedInputError
from converters.model import Sheet, cell_text, column_names, strip_extension
from converters.spreadsheet import frame_to_rows, promote_header

logger = logging.getLogger(__name__)


class CsvParseMode(str, Enum):
    """
    How CSV text is split into fields.

    NAIVE splits every line on a literal comma and ignores quoting, so a
    quoted field containing a comma ends up as several fields. STRICT parses
    real CSV and keeps every value as text. Routes pick one explicitly
    because their outputs differ.
    """
    NAIVE = "naive"
    STRICT = "strict"


def split_naive_line(line: str) -> List[str]:
    return line.split(",")


def _decode_naive(text: str, name: str) -> Sheet:
    lines = text.split("\n")
    # A terminating newline is not a record
    if lines and lines[-1] == "":
        lines.pop()
    lines = [line[:-1] if line.endswith("\r") else line for line in lines]
    if not lines:
        return Sheet(name=name, rows=[])

    headers = split_naive_line(lines[0])
    rows = [dict(zip(headers, split_naive_line(line))) for line in lines[1:]]
    return Sheet(name=name, rows=rows)


def _decode_strict(text: str, name: str) -> Sheet:
    # Read headerless so the parser rejects any row wider than the header
    # row instead of turning the extra leading field into an index
    try:
        df = pd.read_csv(
            io.StringIO(text),
            header=None,
            dtype=str,
            skip_blank_lines=True,
            keep_default_na=False,
            na_values=[""],
        )
    except pd.errors.EmptyDataError:
        logger.warning("CSV input has no columns", extra={"sheet_name": name})
        return Sheet(name=name, rows=[])
    except (pd.errors.ParserError, ValueError) as e:
        logger.error("Failed to parse CSV", extra={"sheet_name": name, "error": str(e)})
        raise MalformedInputError(f"Failed to parse CSV file: {str(e)}") from e

    return Sheet(name=name, rows=frame_to_rows(promote_header(df)))


def decode(text: str, filename: str, mode: CsvParseMode = CsvParseMode.STRICT) -> Sheet:
    """
    Parse CSV text with a header row into a single sheet.

    Args:
        text: CSV content
        filename: Uploaded file name; the sheet is named after it without extension
        mode: Field splitting policy, see CsvParseMode

    Returns:
        Sheet: One record per data line

    Raises:
        MalformedInputError: STRICT mode only, when the parser rejects the text
    """
    name = strip_extension(filename)
    if mode == CsvParseMode.NAIVE:
        sheet = _decode_naive(text, name)
    else:
        sheet = _decode_strict(text, name)
    logger.info(
        f"Decoded CSV in {mode.value} mode",
        extra={"sheet_name": name, "row_count": len(sheet.rows)}
    )
    return sheet


def encode(sheet: Sheet) -> str:
    """
    Write a sheet as comma separated text without any quoting or escaping.

    Args:
        sheet: Sheet to write; the first row's keys are the header

    Returns:
        str: Header line followed by one line per record, empty when there are no rows
    """
    if not sheet.rows:
        return ""
    columns = column_names(sheet)
    lines = [",".join(columns)]
    for row in sheet.rows:
        lines.append(",".join(cell_text(row.get(col)) for col in columns))
    return "\n".join(lines)
