"""
XML output for the three source families.

All strategies build an ElementTree first and differ only in how the tree is
laid out and serialised:

- tabular (spreadsheet sources): ``<workbook><sheet name=".."><row>..``,
  column keys used literally as tags, values written without escaping
- nested (JSON sources): arbitrary JSON walked recursively, keys passed
  through ``sanitize``, escaped
- item (CSV sources): ``<file><item>..``, raw column keys as tags, escaped
"""
import logging
import xml.etree.ElementTree as ET
from enum import Enum
from typing import Any, List

from converters.model import Sheet, Workbook, cell_text, column_names
from converters.sanitizer import sanitize

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
INDENT = "  "


class XmlEscaping(str, Enum):
    """
    ESCAPED lets ElementTree escape special characters in text and
    attributes. RAW writes them exactly as they are, which can produce
    ill-formed XML for values containing ``<`` or ``&``.
    """
    ESCAPED = "escaped"
    RAW = "raw"


def _write_raw(elem: ET.Element, parts: List[str], depth: int) -> None:
    indent = INDENT * depth
    attrs = "".join(f' {key}="{value}"' for key, value in elem.attrib.items())
    children = list(elem)
    if not children:
        parts.append(f"{indent}<{elem.tag}{attrs}>{elem.text or ''}</{elem.tag}>")
        return
    parts.append(f"{indent}<{elem.tag}{attrs}>")
    for child in children:
        _write_raw(child, parts, depth + 1)
    parts.append(f"{indent}</{elem.tag}>")


def render(root: ET.Element, escaping: XmlEscaping) -> str:
    """
    Serialise a tree as indented XML text with a declaration.

    Args:
        root: Root element
        escaping: Whether text and attribute values are escaped

    Returns:
        str: XML document
    """
    if escaping == XmlEscaping.RAW:
        parts: List[str] = []
        _write_raw(root, parts, 0)
        body = "\n".join(parts)
    else:
        ET.indent(root, space=INDENT)
        body = ET.tostring(root, encoding="unicode")
    return f"{XML_DECLARATION}\n{body}"


def build_tabular_tree(workbook: Workbook) -> ET.Element:
    root = ET.Element("workbook")
    for sheet in workbook.sheets:
        sheet_element = ET.SubElement(root, "sheet", {"name": sheet.name})
        columns = column_names(sheet)
        for row in sheet.rows:
            row_element = ET.SubElement(sheet_element, "row")
            for col in columns:
                ET.SubElement(row_element, col).text = cell_text(row.get(col))
    return root


def encode_workbook_tabular(workbook: Workbook, escaping: XmlEscaping = XmlEscaping.RAW) -> str:
    """
    Every sheet as ``<sheet name="...">`` holding one ``<row>`` per record.

    Column keys are used as tag names without sanitizing.
    """
    return render(build_tabular_tree(workbook), escaping)


def _append_value(parent: ET.Element, tag: str, value: Any) -> None:
    if isinstance(value, list):
        # One sibling per item, all sharing the enclosing key's tag
        for item in value:
            _append_value(parent, tag, item)
    elif isinstance(value, dict):
        element = ET.SubElement(parent, tag)
        for key, child in value.items():
            _append_value(element, sanitize(key), child)
    else:
        element = ET.SubElement(parent, tag)
        if value is not None:
            element.text = cell_text(value)


def build_nested_tree(value: Any, root_name: str) -> ET.Element:
    root = ET.Element(sanitize(root_name))
    if isinstance(value, dict):
        for key, child in value.items():
            _append_value(root, sanitize(key), child)
    elif isinstance(value, list):
        for item in value:
            _append_value(root, "item", item)
    elif value is not None:
        root.text = cell_text(value)
    return root


def encode_nested(value: Any, root_name: str, escaping: XmlEscaping = XmlEscaping.ESCAPED) -> str:
    """
    Recursively convert any JSON value to XML.

    Args:
        value: Parsed JSON
        root_name: Name of the root element before sanitizing, usually the file name
        escaping: Escaping policy

    Returns:
        str: XML document
    """
    return render(build_nested_tree(value, root_name), escaping)


def build_item_tree(sheet: Sheet) -> ET.Element:
    root = ET.Element(sheet.name)
    columns = column_names(sheet)
    for row in sheet.rows:
        item = ET.SubElement(root, "item")
        for col in columns:
            ET.SubElement(item, col).text = cell_text(row.get(col))
    return root


def encode_sheet_items(sheet: Sheet, escaping: XmlEscaping = XmlEscaping.ESCAPED) -> str:
    """One ``<item>`` per record under a root named after the sheet."""
    logger.debug(f"Writing {len(sheet.rows)} XML items", extra={"root": sheet.name})
    return render(build_item_tree(sheet), escaping)
