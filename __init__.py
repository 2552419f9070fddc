"""
Tabular File Converter

This package provides an HTTP API that converts uploaded Excel, CSV and JSON
files to Excel, CSV, JSON, SQL or XML and returns the result as a download.

Key modules:
- main.py: FastAPI application, logging setup and one endpoint per conversion
- config.py: Settings loaded from CONVERTER_* environment variables
- file_conversion.py: Route table and the conversion pipeline
- converters/: Format codecs and emitters
- utils/result.py: Result pattern implementation for error handling
"""
