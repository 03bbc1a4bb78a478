from typing import Generic, TypeVar, Optional, Any, Dict, Type, Union
from http import HTTPStatus

from utils.errors import AppError

T = TypeVar('T')  # Generic type variable


class Result(Generic[T]):
    """
    A generic result class that represents the outcome of a service operation.

    Service and invitation operations return a Result instead of raising, so
    the API layer can render every outcome with the same envelope. A failed
    Result remembers which AppError subclass produced it.

    Attributes:
        success (bool): Indicates if the operation was successful
        data (Optional[T]): The result data (only present when success is True)
        message (Optional[str]): Human-readable outcome, present on success and failure
        error (Optional[str]): Error message (only present when success is False)
        error_type (Optional[Type[AppError]]): Error class behind a failure
        status_code (HTTPStatus): HTTP status code (default: 200 for success, 400 for failure)
    """
    def __init__(
        self,
        success: bool,
        data: Optional[T] = None,
        error: Optional[str] = None,
        status_code: Optional[Union[int, HTTPStatus]] = None,
        message: Optional[str] = None,
        error_type: Optional[Type[AppError]] = None,
    ):
        """
        Initialize a Result object.

        Args:
            success (bool): Whether the operation succeeded
            data (Optional[T], optional): The data returned by a successful operation. Defaults to None.
            error (Optional[str], optional): Error message for a failed operation. Defaults to None.
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code.
                Defaults to 200 for success, 400 for failure.
            message (Optional[str], optional): Outcome message. Defaults to the error on failure.
            error_type (Optional[Type[AppError]], optional): Error class of a failure.
        """
        self.success = success
        self.data = data
        self.error = error
        self.message = message if message is not None else error
        self.error_type = error_type

        if status_code is None:
            self.status_code = HTTPStatus.OK if success else HTTPStatus.BAD_REQUEST
        elif isinstance(status_code, HTTPStatus):
            self.status_code = status_code
        else:
            self.status_code = HTTPStatus(status_code)

    @classmethod
    def ok(
        cls,
        data: T,
        message: Optional[str] = None,
        status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.OK,
    ) -> "Result[T]":
        """
        Create a successful Result with the provided data.

        Args:
            data (T): The data to be wrapped in the Result
            message (Optional[str], optional): Success message shown to the client
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code. Defaults to 200 OK.

        Returns:
            Result[T]: A successful Result containing the provided data
        """
        return cls(success=True, data=data, status_code=status_code, message=message)

    @classmethod
    def created(cls, data: T, message: Optional[str] = None) -> "Result[T]":
        return cls.ok(data, message=message, status_code=HTTPStatus.CREATED)

    @classmethod
    def fail(cls, error: str, status_code: Optional[Union[int, HTTPStatus]] = HTTPStatus.BAD_REQUEST) -> "Result[T]":
        """
        Create a failed Result with the provided error message.

        Args:
            error (str): The error message describing the failure
            status_code (Optional[Union[int, HTTPStatus]], optional): HTTP status code. Defaults to 400 BAD_REQUEST.

        Returns:
            Result[T]: A failed Result containing the error message
        """
        return cls(success=False, error=error, status_code=status_code)

    @classmethod
    def from_error(cls, exc: AppError) -> "Result[T]":
        """
        Create a failed Result from a raised AppError, keeping its status and type.

        Args:
            exc (AppError): The error raised by core logic

        Returns:
            Result[T]: A failed Result mirroring the error
        """
        return cls(
            success=False,
            error=exc.message,
            status_code=exc.status_code,
            error_type=type(exc),
        )

    def is_success(self) -> bool:
        return self.success

    def is_failure(self) -> bool:
        return not self.success

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert Result to the response envelope used by every API endpoint.

        Returns:
            Dict[str, Any]: Dictionary containing success, status, message and data/error
        """
        response: Dict[str, Any] = {
            "success": self.success,
            "status_code": self.status_code.value,
            "status": self.status_code.phrase,
            "message": self.message or self.status_code.phrase,
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
            # Truncate long data representations
            if len(data_repr) > 100:
                data_repr = f"{data_repr[:97]}..."
            return f"Success ({status_info}): {data_repr}"
        return f"Failure ({status_info}): {self.error}"

    def __repr__(self) -> str:
        return (
            f"Result(success={self.success}, status_code={self.status_code!r}, "
            f"data={self.data!r}, error={self.error!r})"
        )
