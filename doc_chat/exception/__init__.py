from .custom_exception import (
    AuthorizationError,
    CompletionServiceError,
    DocumentChatException,
    EmbeddingServiceError,
    EmptyDocumentError,
    EmptyInputError,
    ExternalServiceError,
    ExtractionError,
    FileTooLargeError,
    NotFoundError,
    PersistenceError,
    RateLimitError,
    StorageError,
    UnsupportedFileTypeError,
    ValidationError,
)

__all__ = [
    "AuthorizationError",
    "CompletionServiceError",
    "DocumentChatException",
    "EmbeddingServiceError",
    "EmptyDocumentError",
    "EmptyInputError",
    "ExternalServiceError",
    "ExtractionError",
    "FileTooLargeError",
    "NotFoundError",
    "PersistenceError",
    "RateLimitError",
    "StorageError",
    "UnsupportedFileTypeError",
    "ValidationError",
]
