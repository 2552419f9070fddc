from http import HTTPStatus
from typing import Any, Dict, Optional


class ConversionError(Exception):
    """
    Base class for every failure raised by the conversion engine.

    Each subclass carries the HTTP status the API layer should answer with,
    so codecs never need to know about the web framework.

    Attributes:
        message (str): Human readable description of the failure
        status_code (HTTPStatus): Status used when the error reaches the client
        details (Dict[str, Any]): Optional structured context for logging
    """
    status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the error to a dictionary suitable for structured logging.

        Returns:
            Dict[str, Any]: error type, status and message plus any details
        """
        response = {
            "error_type": type(self).__name__,
            "status_code": self.status_code.value,
            "error": self.message,
        }
        if self.details:
            response["details"] = self.details
        return response


class InputMissingError(ConversionError):
    """No file was provided."""
    status_code = HTTPStatus.BAD_REQUEST


class MalformedInputError(ConversionError):
    """The uploaded bytes do not parse as the declared source format."""
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


class UnsupportedShapeError(ConversionError):
    """Valid input that the target format cannot represent."""
    status_code = HTTPStatus.BAD_REQUEST


class EmptyInputError(ConversionError):
    """Zero rows where a schema has to be derived from the data."""
    status_code = HTTPStatus.BAD_REQUEST


class EncodingError(ConversionError):
    """Serialising the target format failed."""
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
