from typing import Generic, TypeVar, Optional, Any, Dict, Union
from http import HTTPStatus

T = TypeVar('T')  # Generic type variable


class Result(Generic[T]):
    """
    Outcome of a conversion step: either data or an error message, plus the
    HTTP status the API should answer with.

    The conversion engine raises exceptions; ConversionPipeline catches them
    at its boundary and hands a Result to the web layer, so route handlers
    only branch on ``is_success()``.

    Attributes:
        success (bool): Whether the step succeeded
        data (Optional[T]): Payload of a successful step
        error (Optional[str]): Message of a failed step
        status_code (HTTPStatus): 200 for success unless given, 400 for failure unless given
    """
    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        error: Optional[str] = None,
        status_code: Optional[Union[int, HTTPStatus]] = None
    ):
        self.success = success
        self.data = data
        self.error = error

        if status_code is None:
            self.status_code = HTTPStatus.OK if success else HTTPStatus.BAD_REQUEST
        else:
            self.status_code = HTTPStatus(status_code)

    @classmethod
    def ok(cls, data: T, status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.OK) -> "Result[T]":
        """
        Wrap successful data.

        Args:
            data (T): Payload
            status_code (Optional[Union[int, HTTPStatus]], optional): Defaults to 200 OK.
        """
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: str, status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.BAD_REQUEST) -> "Result[T]":
        """
        Wrap an error message.

        Args:
            error (str): What went wrong
            status_code (Optional[Union[int, HTTPStatus]], optional): Defaults to 400 BAD_REQUEST.
        """
        return cls(success=False, error=error, status_code=status_code)

    @classmethod
    def from_error(cls, error: Exception) -> "Result[T]":
        """
        Build a failed Result from an exception.

        Exceptions exposing ``status_code`` and ``message`` (the conversion
        errors) keep their status; anything else is reported as a 500.

        Args:
            error (Exception): The caught exception

        Returns:
            Result[T]: A failed Result carrying the exception's message
        """
        status_code = getattr(error, "status_code", HTTPStatus.INTERNAL_SERVER_ERROR)
        message = getattr(error, "message", None) or str(error)
        return cls(success=False, error=message, status_code=status_code)

    def is_success(self) -> bool:
        return self.success

    def is_failure(self) -> bool:
        return not self.success

    def to_dict(self) -> Dict[str, Any]:
        """
        Dictionary form used for logging a Result.

        Returns:
            Dict[str, Any]: success flag, status code and phrase, and data or error
        """
        response = {
            "success": self.success,
            "status_code": self.status_code.value,
            "status": self.status_code.phrase
        }

        if self.is_success():
            response["data"] = self.data
        else:
            response["error"] = self.error

        return response

    def __str__(self) -> str:
        status_info = f"{self.status_code.value} {self.status_code.phrase}"
        if self.is_success():
            data_repr = str(self.data)
            if len(data_repr) > 100:
                data_repr = f"{data_repr[:97]}..."
            return f"Success ({status_info}): {data_repr}"
        return f"Failure ({status_info}): {self.error}"

    def __repr__(self) -> str:
        return f"Result(success={self.success}, status_code={self.status_code!r}, data={self.data!r}, error={self.error!r})"
