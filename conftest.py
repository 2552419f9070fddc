"""
Pytest configuration file.

This file is automatically loaded by pytest and provides global test configuration.
It ensures the project's source directory is added to the Python path so that
modules can be imported properly during test execution, and holds the
fixtures shared by the test modules.
"""
import io
import os
import sys

import openpyxl
import pandas as pd
import pytest

# Add the current directory to the Python path
# This ensures imports work correctly when running tests
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from converters.model import Sheet, Workbook  # noqa: E402


@pytest.fixture
def two_sheet_workbook():
    """
    Fixture providing the two-sheet workbook used across the conversion tests.

    Returns:
        Workbook: Sheet1 and Sheet2, one row each with columns a and b
    """
    return Workbook(sheets=[
        Sheet(name="Sheet1", rows=[{"a": 1, "b": "x"}]),
        Sheet(name="Sheet2", rows=[{"a": 2, "b": "y"}]),
    ])


@pytest.fixture
def two_sheet_xlsx():
    """
    Fixture providing xlsx bytes for the two-sheet workbook, written directly with pandas.

    Returns:
        bytes: Excel file content
    """
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame({"a": [1], "b": ["x"]}).to_excel(writer, sheet_name="Sheet1", index=False)
        pd.DataFrame({"a": [2], "b": ["y"]}).to_excel(writer, sheet_name="Sheet2", index=False)
    return buffer.getvalue()


@pytest.fixture
def quoted_csv():
    """
    Fixture providing CSV text whose second field holds a quoted comma.

    Returns:
        str: Header ``name,city`` and one data row
    """
    return 'name,city\nO\'Brien,"New York, NY"\n'


@pytest.fixture
def make_xlsx():
    """
    Fixture providing a builder for single-sheet xlsx files with cells at given positions.

    Returns:
        Callable[[Dict[str, Any]], bytes]: Takes ``{"C3": "a", ...}`` and returns Excel file content
    """
    def _build(cells, title="Sheet1"):
        book = openpyxl.Workbook()
        sheet = book.active
        sheet.title = title
        for ref, value in cells.items():
            sheet[ref] = value
        buffer = io.BytesIO()
        book.save(buffer)
        return buffer.getvalue()
    return _build
