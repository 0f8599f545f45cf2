import sys
import traceback
from typing import Optional


class DocumentChatException(Exception):
    """
    Base exception for the document chat service.

    Accepts the same `error_details` forms as the rest of the codebase:
      - None        -> use the exception currently being handled (if any)
      - an exception -> use that exception's traceback
      - the sys module -> use sys.exc_info()

    The innermost frame of that traceback is kept so logs point at the
    line that actually failed, not at the re-raise site.
    """

    status_code: int = 500

    def __init__(self, error_message, error_details: Optional[object] = None):
        self.error_message = str(error_message)

        if isinstance(error_details, BaseException):
            exc_type, exc_value, exc_tb = (
                type(error_details),
                error_details,
                error_details.__traceback__,
            )
        elif error_details is None or hasattr(error_details, "exc_info"):
            exc_type, exc_value, exc_tb = sys.exc_info()
        else:
            exc_type, exc_value, exc_tb = None, None, None

        last_tb = exc_tb
        while last_tb and last_tb.tb_next:
            last_tb = last_tb.tb_next

        self.file_name = last_tb.tb_frame.f_code.co_filename if last_tb else "<unknown>"
        self.lineno = last_tb.tb_lineno if last_tb else -1
        self.cause = exc_value

        if exc_type and exc_tb:
            self.traceback_str = "".join(
                traceback.format_exception(exc_type, exc_value, exc_tb)
            )
        else:
            self.traceback_str = ""

        super().__init__(self.error_message)

    def __str__(self):
        return self.error_message

    def details(self) -> str:
        base = f"{self.error_message} [{self.file_name}:{self.lineno}]"
        if self.cause is not None:
            base += f" | cause={self.cause!r}"
        return base


# ---------------------------------------------------------------
# Validation: bad input, surfaced to the caller as 400
# ---------------------------------------------------------------
class ValidationError(DocumentChatException):
    status_code = 400


class EmptyInputError(ValidationError):
    pass


class FileTooLargeError(ValidationError):
    pass


class UnsupportedFileTypeError(ValidationError):
    pass


class EmptyDocumentError(ValidationError):
    pass


class ExtractionError(ValidationError):
    pass


# ---------------------------------------------------------------
# Caller identity / quota
# ---------------------------------------------------------------
class AuthorizationError(DocumentChatException):
    status_code = 401


class NotFoundError(DocumentChatException):
    status_code = 404


class RateLimitError(DocumentChatException):
    status_code = 429


# ---------------------------------------------------------------
# Provider failures (embedding / completion)
# ---------------------------------------------------------------
class ExternalServiceError(DocumentChatException):
    status_code = 502


class EmbeddingServiceError(ExternalServiceError):
    pass


class CompletionServiceError(ExternalServiceError):
    pass


# ---------------------------------------------------------------
# Store / object storage failures
# ---------------------------------------------------------------
class PersistenceError(DocumentChatException):
    status_code = 500


class StorageError(PersistenceError):
    pass
