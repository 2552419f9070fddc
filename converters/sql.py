import logging
import math
from enum import Enum
from typing import Any, List

from converters.errors import EmptyInputError
from converters.model import Sheet, Workbook, cell_text, column_names

logger = logging.getLogger(__name__)


class IdentifierQuoting(str, Enum):
    """
    How table and column names are written.

    Names are never escaped: BACKTICK only wraps them (used for spreadsheet
    sources), BARE writes them verbatim (used for CSV and JSON sources).
    """
    BACKTICK = "backtick"
    BARE = "bare"


def quote_identifier(name: str, quoting: IdentifierQuoting) -> str:
    if quoting == IdentifierQuoting.BACKTICK:
        return f"`{name}`"
    return name


def sql_literal(value: Any) -> str:
    """
    Render a cell as a SQL literal.

    Strings are single quoted with embedded quotes doubled, numbers are
    written as-is, booleans as TRUE/FALSE and None as NULL. NaN and the
    infinities have no SQL literal and are written as NULL too. Nested JSON
    values are stored as quoted JSON text.
    """
    if value is None or (isinstance(value, float) and not math.isfinite(value)):
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return cell_text(value)
    text = cell_text(value)
    return "'" + text.replace("'", "''") + "'"


def _insert_statements(sheet: Sheet, quoting: IdentifierQuoting) -> List[str]:
    columns = column_names(sheet)
    table = quote_identifier(sheet.name, quoting)
    column_list = ", ".join(quote_identifier(col, quoting) for col in columns)
    statements = []
    for row in sheet.rows:
        values = ", ".join(sql_literal(row.get(col)) for col in columns)
        statements.append(f"INSERT INTO {table} ({column_list}) VALUES ({values});")
    return statements


def emit_inserts_only(sheet: Sheet, quoting: IdentifierQuoting = IdentifierQuoting.BARE) -> str:
    """
    One INSERT statement per row, one statement per line.

    Args:
        sheet: Sheet whose name is the table name
        quoting: Identifier policy

    Returns:
        str: The statements; empty for a sheet without rows
    """
    statements = _insert_statements(sheet, quoting)
    logger.debug(f"Emitted {len(statements)} INSERT statements", extra={"table": sheet.name})
    return "\n".join(statements)


def emit_create_and_inserts(sheet: Sheet, quoting: IdentifierQuoting = IdentifierQuoting.BARE) -> str:
    """
    A CREATE TABLE statement declaring every column as TEXT, a blank line,
    then the INSERT statements.

    Args:
        sheet: Sheet whose name is the table name
        quoting: Identifier policy

    Returns:
        str: DDL followed by the inserts

    Raises:
        EmptyInputError: If the sheet has no rows to take the columns from
    """
    if not sheet.rows:
        raise EmptyInputError(
            f"Cannot create table '{sheet.name}': the file has no data rows to derive columns from",
            details={"table": sheet.name}
        )
    table = quote_identifier(sheet.name, quoting)
    definitions = ", ".join(f"{quote_identifier(col, quoting)} TEXT" for col in column_names(sheet))
    create = f"CREATE TABLE {table} ({definitions});"
    return create + "\n\n" + "\n".join(_insert_statements(sheet, quoting))


def emit_workbook(workbook: Workbook, quoting: IdentifierQuoting = IdentifierQuoting.BARE) -> str:
    """INSERT statements for every sheet in order; empty sheets contribute nothing."""
    scripts = [emit_inserts_only(sheet, quoting) for sheet in workbook.sheets]
    return "\n".join(script for script in scripts if script)
