"""
Format conversion engine.

Pure transformations between the shared tabular model and each external
format. Nothing in this package knows about HTTP or temporary files.

Key modules:
- model.py: Workbook / Sheet / Artifact and cell formatting helpers
- errors.py: Error taxonomy with HTTP status mapping
- sanitizer.py: XML-safe identifiers
- spreadsheet.py: xlsx decode/encode through pandas and openpyxl
- csv_codec.py: CSV decode (naive or strict) and naive encode
- json_codec.py: JSON decode/encode, array and multi-sheet shapes
- sql.py: CREATE TABLE / INSERT emission
- xml_emitter.py: Tabular, nested and item XML strategies
- archive.py: Zip bundling of per-sheet files
"""
