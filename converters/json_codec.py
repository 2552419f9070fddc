import json
import logging
from typing import Any, Union

from converters.errors import MalformedInputError, UnsupportedShapeError
from converters.model import Sheet, Workbook, strip_extension

logger = logging.getLogger(__name__)


def _is_records(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, dict) for item in value)


def load(text: str) -> Any:
    """
    Parse JSON text without interpreting its shape.

    Raises:
        MalformedInputError: If the text is not valid JSON, with line and column
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON input", extra={"line": e.lineno, "column": e.colno, "error": e.msg})
        raise MalformedInputError(
            f"Invalid JSON at line {e.lineno} column {e.colno}: {e.msg}",
            details={"line": e.lineno, "column": e.colno}
        ) from e


def decode(text: str, filename: str) -> Union[Workbook, Any]:
    """
    Parse JSON text and interpret it as tabular data when its shape allows.

    - An array of objects becomes a one-sheet workbook named after the file.
    - A non-empty object whose values are all arrays of objects becomes a
      multi-sheet workbook keyed by sheet name.
    - Anything else is returned unchanged as opaque JSON.

    Args:
        text: JSON content
        filename: Uploaded file name, used for the single-sheet case

    Returns:
        Union[Workbook, Any]: A Workbook, or the parsed value for other shapes

    Raises:
        MalformedInputError: If the text is not valid JSON
    """
    data = load(text)

    if _is_records(data):
        return Workbook(sheets=[Sheet(name=strip_extension(filename), rows=data)])

    if isinstance(data, dict) and data and all(_is_records(value) for value in data.values()):
        return Workbook(sheets=[Sheet(name=key, rows=value) for key, value in data.items()])

    logger.info("JSON input is not tabular, keeping it as nested data", extra={"json_type": type(data).__name__})
    return data


def require_workbook(decoded: Union[Workbook, Any], target: str) -> Workbook:
    """
    Return ``decoded`` if it is a Workbook, otherwise reject it for ``target``.

    Raises:
        UnsupportedShapeError: If the JSON is not an array of records or a map of them
    """
    if isinstance(decoded, Workbook):
        return decoded
    raise UnsupportedShapeError(
        f"JSON must be an array of objects (or an object of such arrays) to convert to {target}",
        details={"json_type": type(decoded).__name__}
    )


def _dumps(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def encode_workbook_as_multi_sheet_object(workbook: Workbook) -> str:
    """Serialise a workbook as ``{sheet name: [rows]}`` with 2-space indentation."""
    return _dumps(workbook.as_mapping())


def encode_sheet_as_array(sheet: Sheet) -> str:
    """Serialise one sheet as a JSON array of row objects with 2-space indentation."""
    return _dumps(sheet.rows)
