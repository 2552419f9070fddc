import os
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from converters import archive, csv_codec, json_codec, spreadsheet, sql, xml_emitter
from converters.csv_codec import CsvParseMode
from converters.errors import ConversionError, EncodingError, InputMissingError, UnsupportedShapeError
from converters.model import Artifact, Sheet, Workbook, read_text, strip_extension
from converters.sql import IdentifierQuoting
from utils.result import Result

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class LogContext:
    """Context manager for tracking and logging the duration of a pipeline stage"""
    def __init__(self, operation_name: str, **kwargs):
        self.operation_name = operation_name
        self.start_time = None
        self.request_id = kwargs.get('request_id', str(uuid.uuid4())[:8])
        self.extra = kwargs

    def __enter__(self):
        self.start_time = time.time()
        logger.info(f"Starting {self.operation_name}", extra={**self.extra, "request_id": self.request_id})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        if exc_type:
            logger.error(
                f"Failed {self.operation_name} in {duration:.2f}s: {str(exc_val)}",
                extra={**self.extra, "request_id": self.request_id, "duration": duration},
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            logger.info(
                f"Completed {self.operation_name} in {duration:.2f}s",
                extra={**self.extra, "request_id": self.request_id, "duration": duration}
            )


class SourceFormat(str, Enum):
    EXCEL = "excel"
    CSV = "csv"
    JSON = "json"


class TargetFormat(str, Enum):
    EXCEL = "excel"
    CSV = "csv"
    JSON = "json"
    SQL = "sql"
    XML = "xml"


class PipelineState(str, Enum):
    """Per-request lifecycle. FAILED can be entered from DECODING or ENCODING."""
    DECODING = "decoding"
    ENCODING = "encoding"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ConversionRoute:
    """
    One ``source -> target`` conversion.

    Attributes:
        source: Format of the uploaded file
        target: Format of the generated file
        extension: Extension appended to the upload name for the download
        media_type: Content type of the download
        summary: One line description shown in the API docs
        decode: ``(content, filename) -> decoded data``
        encode: ``(decoded, filename) -> bytes`` for single-file outputs
        encode_sheet: ``sheet -> bytes`` for outputs made of one file per
            sheet, which are then bundled into a zip archive
        entry_extension: Extension of each per-sheet file
    """
    source: SourceFormat
    target: TargetFormat
    extension: str
    media_type: str
    summary: str
    decode: Callable[[bytes, str], Any]
    encode: Optional[Callable[[Any, str], bytes]] = None
    encode_sheet: Optional[Callable[[Sheet], bytes]] = None
    entry_extension: Optional[str] = None

    @property
    def path(self) -> str:
        return f"/{self.source.value}-{self.target.value}"

    @property
    def tag(self) -> str:
        return "Excel" if self.source == SourceFormat.EXCEL else self.source.value.upper()

    @property
    def is_bundled(self) -> bool:
        return self.encode_sheet is not None


class ConversionOutput(BaseModel):
    """
    Everything produced by a successful conversion.

    Attributes:
        artifact: The file returned to the client
        path: Where that file was written
        entries: Per-sheet files that went into the archive, if any
        entry_paths: Where those per-sheet files were written
        state: Final pipeline state
    """
    artifact: Artifact
    path: str
    entries: List[Artifact] = []
    entry_paths: List[str] = []
    state: PipelineState = PipelineState.DONE


# Decoders

def _decode_excel(content: bytes, filename: str) -> Workbook:
    return spreadsheet.decode(content)


def _decode_csv(content: bytes, filename: str, mode: CsvParseMode) -> Workbook:
    return Workbook(sheets=[csv_codec.decode(read_text(content), filename, mode)])


def _decode_json(content: bytes, filename: str) -> Any:
    return json_codec.decode(read_text(content), filename)


def _load_json(content: bytes, filename: str) -> Any:
    return json_codec.load(read_text(content))


# Encoders

def _utf8(text: str) -> bytes:
    return text.encode("utf-8")


def _single_sheet(workbook: Workbook, target: str) -> Sheet:
    if len(workbook.sheets) != 1:
        raise UnsupportedShapeError(
            f"Only a single array of records can be converted to {target}, got {len(workbook.sheets)} sheets",
            details={"sheet_names": workbook.sheet_names()}
        )
    return workbook.sheets[0]


def _excel_to_json(workbook: Workbook, filename: str) -> bytes:
    return _utf8(json_codec.encode_workbook_as_multi_sheet_object(workbook))


def _sheet_to_csv(sheet: Sheet) -> bytes:
    return _utf8(spreadsheet.encode_sheet_as_delimited_text(sheet))


def _excel_to_sql(workbook: Workbook, filename: str) -> bytes:
    return _utf8(sql.emit_workbook(workbook, IdentifierQuoting.BACKTICK))


def _excel_to_xml(workbook: Workbook, filename: str) -> bytes:
    return _utf8(xml_emitter.encode_workbook_tabular(workbook))


def _to_excel(decoded: Any, filename: str) -> bytes:
    return spreadsheet.encode(json_codec.require_workbook(decoded, "Excel"))


def _csv_to_json(workbook: Workbook, filename: str) -> bytes:
    return _utf8(json_codec.encode_sheet_as_array(workbook.sheets[0]))


def _csv_to_sql(workbook: Workbook, filename: str) -> bytes:
    return _utf8(sql.emit_create_and_inserts(workbook.sheets[0], IdentifierQuoting.BARE))


def _csv_to_xml(workbook: Workbook, filename: str) -> bytes:
    return _utf8(xml_emitter.encode_sheet_items(workbook.sheets[0]))


def _json_to_csv(decoded: Any, filename: str) -> bytes:
    workbook = json_codec.require_workbook(decoded, "CSV")
    return _utf8(csv_codec.encode(_single_sheet(workbook, "CSV")))


def _json_to_sql(decoded: Any, filename: str) -> bytes:
    workbook = json_codec.require_workbook(decoded, "SQL")
    return _utf8(sql.emit_workbook(workbook, IdentifierQuoting.BARE))


def _json_to_xml(value: Any, filename: str) -> bytes:
    return _utf8(xml_emitter.encode_nested(value, strip_extension(filename)))


_decode_csv_strict = partial(_decode_csv, mode=CsvParseMode.STRICT)
_decode_csv_naive = partial(_decode_csv, mode=CsvParseMode.NAIVE)

_ROUTE_LIST = [
    ConversionRoute(SourceFormat.EXCEL, TargetFormat.JSON, "json", "application/json",
                    "Convert every sheet of an Excel file to one JSON object",
                    decode=_decode_excel, encode=_excel_to_json),
    ConversionRoute(SourceFormat.EXCEL, TargetFormat.CSV, "zip", "application/zip",
                    "Convert each sheet of an Excel file to CSV, bundled as a zip",
                    decode=_decode_excel, encode_sheet=_sheet_to_csv, entry_extension="csv"),
    ConversionRoute(SourceFormat.EXCEL, TargetFormat.SQL, "sql", "application/sql",
                    "Convert an Excel file to SQL INSERT statements",
                    decode=_decode_excel, encode=_excel_to_sql),
    ConversionRoute(SourceFormat.EXCEL, TargetFormat.XML, "xml", "application/xml",
                    "Convert an Excel file to XML",
                    decode=_decode_excel, encode=_excel_to_xml),
    ConversionRoute(SourceFormat.CSV, TargetFormat.EXCEL, "xlsx", XLSX_MEDIA_TYPE,
                    "Convert a CSV file to an Excel workbook",
                    decode=_decode_csv_strict, encode=_to_excel),
    ConversionRoute(SourceFormat.CSV, TargetFormat.JSON, "json", "application/json",
                    "Convert a CSV file to a JSON array (lines split on commas, quotes are not parsed)",
                    decode=_decode_csv_naive, encode=_csv_to_json),
    ConversionRoute(SourceFormat.CSV, TargetFormat.SQL, "sql", "application/sql",
                    "Convert a CSV file to a CREATE TABLE statement and INSERT statements",
                    decode=_decode_csv_strict, encode=_csv_to_sql),
    ConversionRoute(SourceFormat.CSV, TargetFormat.XML, "xml", "application/xml",
                    "Convert a CSV file to XML",
                    decode=_decode_csv_strict, encode=_csv_to_xml),
    ConversionRoute(SourceFormat.JSON, TargetFormat.EXCEL, "xlsx", XLSX_MEDIA_TYPE,
                    "Convert a JSON array (or an object of arrays) to an Excel workbook",
                    decode=_decode_json, encode=_to_excel),
    ConversionRoute(SourceFormat.JSON, TargetFormat.CSV, "csv", "text/csv",
                    "Convert a JSON array to CSV",
                    decode=_decode_json, encode=_json_to_csv),
    ConversionRoute(SourceFormat.JSON, TargetFormat.SQL, "sql", "application/sql",
                    "Convert a JSON array to SQL INSERT statements",
                    decode=_decode_json, encode=_json_to_sql),
    ConversionRoute(SourceFormat.JSON, TargetFormat.XML, "xml", "application/xml",
                    "Convert any JSON document to XML",
                    decode=_load_json, encode=_json_to_xml),
]

ROUTES: Dict[Tuple[SourceFormat, TargetFormat], ConversionRoute] = {
    (route.source, route.target): route for route in _ROUTE_LIST
}


def get_route(source: SourceFormat, target: TargetFormat) -> ConversionRoute:
    """
    Look up a conversion in the static route table.

    Raises:
        UnsupportedShapeError: If the pair is not supported
    """
    try:
        return ROUTES[(SourceFormat(source), TargetFormat(target))]
    except (KeyError, ValueError) as e:
        raise UnsupportedShapeError(f"Conversion from {source} to {target} is not supported") from e


class ConversionPipeline:
    """
    Runs one conversion per call: read the upload, decode, encode, write the
    result into the temporary directory.

    Codecs raise ConversionError subclasses; each stage turns them into a
    failed Result so callers never see those exceptions. Anything else is a
    bug and propagates.
    """

    def __init__(self, temp_dir: str):
        """
        Args:
            temp_dir: Directory where generated files are written
        """
        self.temp_dir = temp_dir

    def convert(self, source_path: str, filename: str, route: ConversionRoute) -> Result[ConversionOutput]:
        """
        Convert an uploaded file along ``route``.

        Args:
            source_path: Where the uploaded file was saved
            filename: Original name of the upload
            route: Conversion to run

        Returns:
            Result[ConversionOutput]: The written artifact(s) or the error with its HTTP status
        """
        request_id = str(uuid.uuid4())[:8]
        log_context = {
            "request_id": request_id,
            "source_file": filename,
            "conversion": route.path,
        }
        logger.info("Processing conversion", extra=log_context)

        state = PipelineState.DECODING
        with LogContext("decoding", **log_context):
            decode_result = self._decode(route, source_path, filename)

        if not decode_result.is_success():
            self._log_failure(state, decode_result, log_context)
            return decode_result

        state = PipelineState.ENCODING
        with LogContext("encoding", **log_context):
            encode_result = self._encode(route, decode_result.data, filename)

        if not encode_result.is_success():
            self._log_failure(state, encode_result, log_context)
            return encode_result

        artifact, entries = encode_result.data
        write_result = self._write(artifact, entries, request_id)
        if not write_result.is_success():
            self._log_failure(state, write_result, log_context)
            return write_result

        output = write_result.data
        logger.info(
            f"Conversion finished with {len(output.artifact.content)} bytes",
            extra={**log_context, "output_path": output.path, "state": output.state.value}
        )
        return write_result

    @staticmethod
    def _log_failure(state: PipelineState, result: Result, log_context: Dict[str, Any]) -> None:
        logger.warning(
            f"Conversion failed while {state.value}: {result.error}",
            extra={**log_context, **result.to_dict(), "state": PipelineState.FAILED.value}
        )

    @staticmethod
    def _decode(route: ConversionRoute, source_path: str, filename: str) -> Result[Any]:
        if not source_path or not os.path.exists(source_path):
            return Result.from_error(InputMissingError("No file uploaded."))

        try:
            with open(source_path, "rb") as f:
                content = f.read()
            return Result.ok(route.decode(content, filename))
        except ConversionError as e:
            return Result.from_error(e)

    @staticmethod
    def _encode(route: ConversionRoute, decoded: Any, filename: str) -> Result[Tuple[Artifact, List[Artifact]]]:
        try:
            entries: List[Artifact] = []
            if route.is_bundled:
                workbook = json_codec.require_workbook(decoded, route.target.value)
                for sheet in workbook.sheets:
                    entries.append(Artifact(
                        content=route.encode_sheet(sheet),
                        filename=f"{filename}-{sheet.name}.{route.entry_extension}",
                        media_type="text/csv",
                    ))
                content = archive.build((entry.filename, entry.content) for entry in entries)
            else:
                content = route.encode(decoded, filename)

            artifact = Artifact(
                content=content,
                filename=f"{filename}.{route.extension}",
                media_type=route.media_type,
            )
            return Result.ok((artifact, entries))
        except ConversionError as e:
            return Result.from_error(e)

    def _write(self, artifact: Artifact, entries: List[Artifact], request_id: str) -> Result[ConversionOutput]:
        # The request id keeps same-named uploads from overwriting each other
        try:
            entry_paths = [self._write_file(entry, request_id) for entry in entries]
            path = self._write_file(artifact, request_id)
        except OSError as e:
            return Result.from_error(EncodingError(f"Failed to write output file: {str(e)}"))

        return Result.ok(ConversionOutput(
            artifact=artifact,
            path=path,
            entries=entries,
            entry_paths=entry_paths,
        ))

    def _write_file(self, artifact: Artifact, request_id: str) -> str:
        os.makedirs(self.temp_dir, exist_ok=True)
        path = os.path.join(self.temp_dir, f"{request_id}-{artifact.filename}")
        with open(path, "wb") as f:
            f.write(artifact.content)
        return path
