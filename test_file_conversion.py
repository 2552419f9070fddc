import io
import json
import os
import zipfile
from http import HTTPStatus
from unittest.mock import patch

import pandas as pd
import pytest

import file_conversion
from converters.errors import EmptyInputError, MalformedInputError, UnsupportedShapeError
from file_conversion import (
    ROUTES,
    XLSX_MEDIA_TYPE,
    ConversionPipeline,
    PipelineState,
    SourceFormat,
    TargetFormat,
    get_route,
)
from utils.result import Result


@pytest.fixture
def pipeline(tmp_path):
    """
    Fixture providing a pipeline writing into a per-test directory.

    Returns:
        ConversionPipeline: Pipeline bound to ``tmp_path / "out"``
    """
    return ConversionPipeline(str(tmp_path / "out"))


@pytest.fixture
def write_upload(tmp_path):
    """
    Fixture providing a helper that stores upload content on disk.

    Returns:
        Callable[[str, bytes], str]: Writes the content and returns its path
    """
    def _write(name, content):
        path = tmp_path / name
        path.write_bytes(content)
        return str(path)
    return _write


def run(pipeline, write_upload, name, content, source, target):
    route = get_route(source, target)
    with patch.object(file_conversion.logger, 'info'), patch.object(file_conversion.logger, 'warning'):
        return pipeline.convert(write_upload(name, content), name, route)


class TestRouteTable:
    """
    Tests for the static conversion table.
    """

    def test_every_supported_pair_is_registered(self):
        expected = {
            ("excel", "json"), ("excel", "csv"), ("excel", "sql"), ("excel", "xml"),
            ("csv", "excel"), ("csv", "json"), ("csv", "sql"), ("csv", "xml"),
            ("json", "excel"), ("json", "csv"), ("json", "sql"), ("json", "xml"),
        }
        assert {(s.value, t.value) for s, t in ROUTES} == expected

    @pytest.mark.parametrize(
        "source, target, path, extension, media_type",
        [
            ("excel", "csv", "/excel-csv", "zip", "application/zip"),
            ("csv", "excel", "/csv-excel", "xlsx", XLSX_MEDIA_TYPE),
            ("json", "csv", "/json-csv", "csv", "text/csv"),
            ("json", "sql", "/json-sql", "sql", "application/sql"),
        ],
        ids=["excel-csv", "csv-excel", "json-csv", "json-sql"]
    )
    def test_get_route(self, source, target, path, extension, media_type):
        """
        Test lookup by plain string values.

        Args:
            source: Source format value
            target: Target format value
            path: Expected URL path
            extension: Expected download extension
            media_type: Expected content type
        """
        route = get_route(source, target)
        assert route.path == path
        assert route.extension == extension
        assert route.media_type == media_type

    @pytest.mark.parametrize(
        "source, target",
        [(SourceFormat.EXCEL, TargetFormat.EXCEL), ("csv", "csv"), ("yaml", "json")],
        ids=["same-format", "csv-csv", "unknown-source"]
    )
    def test_get_route_unsupported(self, source, target):
        with pytest.raises(UnsupportedShapeError):
            get_route(source, target)

    def test_only_excel_to_csv_is_bundled(self):
        bundled = [route.path for route in ROUTES.values() if route.is_bundled]
        assert bundled == ["/excel-csv"]

    @pytest.mark.parametrize(
        "source, tag",
        [("excel", "Excel"), ("csv", "CSV"), ("json", "JSON")],
        ids=["excel", "csv", "json"]
    )
    def test_tag(self, source, tag):
        route = next(r for r in ROUTES.values() if r.source.value == source)
        assert route.tag == tag


class TestConversionPipeline:
    """
    Tests for ConversionPipeline.convert across the supported conversions.
    """

    def test_excel_to_csv_bundles_one_file_per_sheet(self, pipeline, write_upload, two_sheet_xlsx):
        """
        Test that each sheet becomes ``<upload>-<sheet>.csv`` inside a zip.

        Args:
            pipeline: Fixture providing the pipeline
            write_upload: Fixture storing upload content
            two_sheet_xlsx: Fixture providing a two-sheet xlsx file
        """
        result = run(pipeline, write_upload, "two.xlsx", two_sheet_xlsx, "excel", "csv")

        assert result.is_success()
        output = result.data
        assert output.state == PipelineState.DONE
        assert output.artifact.filename == "two.xlsx.zip"
        assert output.artifact.media_type == "application/zip"
        assert [entry.filename for entry in output.entries] == ["two.xlsx-Sheet1.csv", "two.xlsx-Sheet2.csv"]
        assert all(os.path.exists(path) for path in output.entry_paths)

        with zipfile.ZipFile(output.path) as zf:
            assert zf.namelist() == ["two.xlsx-Sheet1.csv", "two.xlsx-Sheet2.csv"]
            assert zf.read("two.xlsx-Sheet1.csv").decode().splitlines() == ["a,b", "1,x"]
            assert zf.read("two.xlsx-Sheet2.csv").decode().splitlines() == ["a,b", "2,y"]

    def test_excel_to_json(self, pipeline, write_upload, two_sheet_xlsx):
        result = run(pipeline, write_upload, "two.xlsx", two_sheet_xlsx, "excel", "json")

        assert result.is_success()
        assert json.loads(result.data.artifact.content) == {
            "Sheet1": [{"a": 1, "b": "x"}],
            "Sheet2": [{"a": 2, "b": "y"}],
        }

    def test_excel_to_sql_covers_all_sheets(self, pipeline, write_upload, two_sheet_xlsx):
        result = run(pipeline, write_upload, "two.xlsx", two_sheet_xlsx, "excel", "sql")

        assert result.data.artifact.content.decode() == (
            "INSERT INTO `Sheet1` (`a`, `b`) VALUES (1, 'x');\n"
            "INSERT INTO `Sheet2` (`a`, `b`) VALUES (2, 'y');"
        )

    def test_excel_to_xml(self, pipeline, write_upload, two_sheet_xlsx):
        result = run(pipeline, write_upload, "two.xlsx", two_sheet_xlsx, "excel", "xml")

        text = result.data.artifact.content.decode()
        assert '<sheet name="Sheet2">' in text
        assert "<b>y</b>" in text

    def test_excel_offset_table_to_sql(self, pipeline, write_upload, make_xlsx):
        """
        Test that a table starting at C3 with a blank row inside yields only its real records.
        """
        content = make_xlsx({"C3": "a", "D3": "b", "C4": 1, "D4": "x", "C6": 2, "D6": "y"})
        result = run(pipeline, write_upload, "offset.xlsx", content, "excel", "sql")

        assert result.data.artifact.content.decode() == (
            "INSERT INTO `Sheet1` (`a`, `b`) VALUES (1, 'x');\n"
            "INSERT INTO `Sheet1` (`a`, `b`) VALUES (2, 'y');"
        )

    def test_malformed_excel_fails_with_500(self, pipeline, write_upload):
        """
        Test that a non-spreadsheet upload fails during decoding with a 500.
        """
        result = run(pipeline, write_upload, "bad.xlsx", b"plain text", "excel", "json")

        assert result.is_failure()
        assert result.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
        assert "Failed to read Excel file" in result.error
        assert not os.path.exists(pipeline.temp_dir) or os.listdir(pipeline.temp_dir) == []

    def test_csv_to_excel(self, pipeline, write_upload, quoted_csv):
        result = run(pipeline, write_upload, "people.csv", quoted_csv.encode(), "csv", "excel")

        assert result.data.artifact.filename == "people.csv.xlsx"
        df = pd.read_excel(io.BytesIO(result.data.artifact.content), sheet_name=None)
        assert list(df) == ["people"]
        assert df["people"].to_dict("records") == [{"name": "O'Brien", "city": "New York, NY"}]

    def test_csv_to_json_splits_naively(self, pipeline, write_upload, quoted_csv):
        """
        Test that the CSV to JSON conversion does not honour quotes.
        """
        result = run(pipeline, write_upload, "people.csv", quoted_csv.encode(), "csv", "json")

        assert json.loads(result.data.artifact.content) == [{"name": "O'Brien", "city": '"New York'}]

    def test_csv_to_sql(self, pipeline, write_upload):
        result = run(pipeline, write_upload, "people.csv", b"id,name\n1,Ann\n", "csv", "sql")

        assert result.data.artifact.content.decode() == (
            "CREATE TABLE people (id TEXT, name TEXT);\n\nINSERT INTO people (id, name) VALUES ('1', 'Ann');"
        )

    def test_csv_to_sql_without_rows_fails_with_400(self, pipeline, write_upload):
        result = run(pipeline, write_upload, "people.csv", b"id,name\n", "csv", "sql")

        assert result.is_failure()
        assert result.status_code == HTTPStatus.BAD_REQUEST

    def test_csv_to_xml(self, pipeline, write_upload, quoted_csv):
        result = run(pipeline, write_upload, "people.csv", quoted_csv.encode(), "csv", "xml")

        text = result.data.artifact.content.decode()
        assert "<people>" in text
        assert "<city>New York, NY</city>" in text

    def test_json_to_sql_single_record(self, pipeline, write_upload):
        """
        Test the statement produced for one record named after the upload.
        """
        content = b'[{"id": 1, "name": "Ann"}]'
        result = run(pipeline, write_upload, "people.json", content, "json", "sql")

        assert result.is_success()
        assert result.data.artifact.content == b"INSERT INTO people (id, name) VALUES (1, 'Ann');"
        assert result.data.artifact.filename == "people.json.sql"

    @pytest.mark.parametrize(
        "target",
        ["sql", "csv", "excel"],
        ids=["sql", "csv", "excel"]
    )
    def test_json_bare_object_is_rejected(self, pipeline, write_upload, target):
        result = run(pipeline, write_upload, "one.json", b'{"id": 1}', "json", target)

        assert result.is_failure()
        assert result.status_code == HTTPStatus.BAD_REQUEST

    def test_json_to_csv_rejects_multiple_sheets(self, pipeline, write_upload):
        content = b'{"a": [{"x": 1}], "b": [{"y": 2}]}'
        result = run(pipeline, write_upload, "multi.json", content, "json", "csv")

        assert result.status_code == HTTPStatus.BAD_REQUEST
        assert "2 sheets" in result.error

    def test_json_to_csv(self, pipeline, write_upload):
        result = run(pipeline, write_upload, "people.json", b'[{"id": 1, "name": "Ann"}]', "json", "csv")
        assert result.data.artifact.content == b"id,name\n1,Ann"

    def test_json_to_excel_object_of_arrays(self, pipeline, write_upload):
        content = b'{"users": [{"id": 1}], "orders": [{"total": 9.5}]}'
        result = run(pipeline, write_upload, "shop.json", content, "json", "excel")

        sheets = pd.read_excel(io.BytesIO(result.data.artifact.content), sheet_name=None)
        assert list(sheets) == ["users", "orders"]

    def test_json_to_xml_accepts_any_document(self, pipeline, write_upload):
        result = run(pipeline, write_upload, "conf.json", b'{"server": {"port": 80}}', "json", "xml")

        text = result.data.artifact.content.decode()
        assert "<conf>" in text
        assert "<port>80</port>" in text

    def test_invalid_json_fails_with_500(self, pipeline, write_upload):
        result = run(pipeline, write_upload, "broken.json", b"[{", "json", "sql")

        assert result.status_code == HTTPStatus.INTERNAL_SERVER_ERROR

    def test_missing_source_file(self, pipeline):
        with patch.object(file_conversion.logger, 'warning'):
            result = pipeline.convert("/does/not/exist.csv", "exist.csv", get_route("csv", "json"))

        assert result.status_code == HTTPStatus.BAD_REQUEST
        assert result.error == "No file uploaded."

    def test_same_name_uploads_do_not_collide(self, pipeline, write_upload):
        """
        Test that two conversions of identically named files write distinct outputs.
        """
        first = run(pipeline, write_upload, "p.json", b'[{"v": 1}]', "json", "csv")
        second = run(pipeline, write_upload, "p.json", b'[{"v": 2}]', "json", "csv")

        assert first.data.path != second.data.path
        with open(first.data.path, "rb") as f:
            assert f.read() == b"v\n1"

    def test_failure_is_logged_with_failed_state(self, pipeline, write_upload):
        path = write_upload("one.json", b'{"id": 1}')
        with patch.object(file_conversion.logger, 'info'), \
             patch.object(file_conversion.logger, 'warning') as mock_warning:
            pipeline.convert(path, "one.json", get_route("json", "sql"))

        mock_warning.assert_called_once()
        assert "while encoding" in mock_warning.call_args[0][0]
        assert mock_warning.call_args[1]["extra"]["state"] == "failed"

    def test_unexpected_exception_propagates(self, pipeline, write_upload, two_sheet_xlsx):
        """
        Test that errors outside the conversion error hierarchy are not turned into a Result.
        """
        with patch.object(file_conversion.spreadsheet, 'decode', side_effect=RuntimeError("boom")), \
             patch.object(file_conversion.logger, 'error'):
            with pytest.raises(RuntimeError):
                run(pipeline, write_upload, "two.xlsx", two_sheet_xlsx, "excel", "json")

    def test_write_error_becomes_500(self, pipeline, write_upload):
        with patch.object(ConversionPipeline, '_write_file', side_effect=OSError("disk full")):
            result = run(pipeline, write_upload, "p.json", b'[{"v": 1}]', "json", "csv")

        assert result.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
        assert "disk full" in result.error


class TestResult:
    """
    Tests for the Result container.
    """

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (EmptyInputError("no rows"), HTTPStatus.BAD_REQUEST),
            (MalformedInputError("bad bytes"), HTTPStatus.INTERNAL_SERVER_ERROR),
            (ValueError("plain"), HTTPStatus.INTERNAL_SERVER_ERROR),
        ],
        ids=["empty-input", "malformed-input", "plain-exception"]
    )
    def test_from_error(self, error, status_code):
        result = Result.from_error(error)

        assert result.is_failure()
        assert result.status_code == status_code
        assert result.error == str(error)

    def test_defaults(self):
        assert Result.ok("data").status_code == HTTPStatus.OK
        assert Result.fail("nope").status_code == HTTPStatus.BAD_REQUEST

    def test_to_dict(self):
        assert Result.fail("nope", 404).to_dict() == {
            "success": False,
            "status_code": 404,
            "status": "Not Found",
            "error": "nope",
        }

    def test_str_truncates_long_data(self):
        text = str(Result.ok("x" * 200))
        assert text.startswith("Success (200 OK): ")
        assert text.endswith("...")


class TestSettings:
    """
    Tests for environment driven configuration.
    """

    def test_environment_overrides(self, monkeypatch, tmp_path):
        from config import Settings

        monkeypatch.setenv("CONVERTER_TEMP_DIR", str(tmp_path))
        monkeypatch.setenv("CONVERTER_LOG_LEVEL", "debug")
        monkeypatch.setenv("CONVERTER_CORS_ORIGINS", "http://a.test, http://b.test,")
        monkeypatch.setenv("CONVERTER_PORT", "8080")

        settings = Settings()
        assert settings.temp_dir == str(tmp_path)
        assert settings.log_level == "DEBUG"
        assert settings.cors_origin_list() == ["http://a.test", "http://b.test"]
        assert settings.port == 8080

    def test_unknown_log_level_is_rejected(self, monkeypatch):
        from pydantic import ValidationError
        from config import Settings

        monkeypatch.setenv("CONVERTER_LOG_LEVEL", "chatty")
        with pytest.raises(ValidationError):
            Settings()
