import json
import os
from typing import Any, Dict, List

from pydantic import BaseModel

from converters.errors import MalformedInputError

# Row values are scalars (str, int, float, bool, None); JSON sources may also
# carry nested dicts and lists.
Row = Dict[str, Any]


class Sheet(BaseModel):
    """
    A named, ordered sequence of rows.

    Attributes:
        name: Sheet label, also used verbatim as SQL table / XML attribute
        rows: Records keyed by column name, in source order
    """
    name: str
    rows: List[Row] = []


class Workbook(BaseModel):
    """
    Ordered collection of sheets shared by every codec.

    Sheet names are not required to be unique. When the workbook is turned
    into a mapping the last sheet with a given name wins.
    """
    sheets: List[Sheet] = []

    def sheet_names(self) -> List[str]:
        return [sheet.name for sheet in self.sheets]

    def as_mapping(self) -> Dict[str, List[Row]]:
        """
        Return ``{sheet name: rows}`` with later duplicates overwriting earlier ones.
        """
        mapping: Dict[str, List[Row]] = {}
        for sheet in self.sheets:
            mapping[sheet.name] = sheet.rows
        return mapping


class Artifact(BaseModel):
    """
    A generated output file.

    Attributes:
        content: Raw bytes of the file
        filename: Suggested download / archive entry name
        media_type: MIME type sent with the download
    """
    content: bytes
    filename: str
    media_type: str


def column_names(sheet: Sheet) -> List[str]:
    """
    Columns used for encoding: the keys of the first row, in insertion order.

    Args:
        sheet: Sheet to inspect

    Returns:
        List[str]: Column names, empty when the sheet has no rows
    """
    if not sheet.rows:
        return []
    return list(sheet.rows[0].keys())


def cell_text(value: Any) -> str:
    """
    Render a cell the way it appears in text formats (CSV, XML).

    Args:
        value: Cell value

    Returns:
        str: ``""`` for None, ``true``/``false`` for booleans, integral
        floats without the trailing ``.0``, compact JSON for nested values
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def strip_extension(filename: str) -> str:
    """Base name of an uploaded file without directory or extension."""
    return os.path.splitext(os.path.basename(filename))[0]


def read_text(content: bytes) -> str:
    """
    Decode uploaded bytes as UTF-8 text, dropping a leading byte order mark.

    Raises:
        MalformedInputError: If the bytes are not valid UTF-8
    """
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise MalformedInputError(
            f"File is not valid UTF-8 text: {str(e)}",
            details={"position": e.start}
        ) from e
