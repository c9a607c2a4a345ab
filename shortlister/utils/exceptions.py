"""
Custom Exception Classes for the Resume Shortlister
"""
from typing import Dict, Any, Type
from fastapi import HTTPException


class ShortlisterError(Exception):
    """Base exception for every domain failure raised by the shortlister"""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        cause: Exception = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/response"""
        result = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class ExtractionError(ShortlisterError):
    """Raised when a document cannot be turned into text"""

    def __init__(self, message: str, file_path: str = None, file_type: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if file_path:
            details['file_path'] = str(file_path)
        if file_type:
            details['file_type'] = file_type
        super().__init__(message, error_code="EXTRACTION_ERROR", details=details, **kwargs)


class PersistenceError(ShortlisterError):
    """Raised when repository operations fail"""

    def __init__(self, message: str, operation: str = None, collection: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if operation:
            details['operation'] = operation
        if collection:
            details['collection'] = collection
        super().__init__(message, error_code="PERSISTENCE_ERROR", details=details, **kwargs)


class ConfigurationError(ShortlisterError):
    """Raised when batch input or matching configuration is invalid"""

    def __init__(self, message: str, config_key: str = None, config_value: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        if config_key:
            details['config_key'] = config_key
        if config_value is not None:
            details['config_value'] = str(config_value)
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details, **kwargs)


class OrganizationError(ShortlisterError):
    """Raised when a processed file cannot be moved to its target folder"""

    def __init__(self, message: str, source: str = None, target: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if source:
            details['source'] = str(source)
        if target:
            details['target'] = str(target)
        super().__init__(message, error_code="ORGANIZATION_ERROR", details=details, **kwargs)


class ProcessingError(ShortlisterError):
    """Raised when a resume processing request fails unexpectedly"""

    def __init__(self, message: str, document_id: str = None, batch_id: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if document_id:
            details['document_id'] = document_id
        if batch_id:
            details['batch_id'] = batch_id
        super().__init__(message, error_code="PROCESSING_ERROR", details=details, **kwargs)


class RecordNotFoundError(ShortlisterError):
    """Raised when a requested resume or batch does not exist"""

    def __init__(self, message: str, resource: str = None, identifier: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if resource:
            details['resource'] = resource
        if identifier:
            details['identifier'] = identifier
        super().__init__(message, error_code="NOT_FOUND", details=details, **kwargs)


class SkipLimitExceededError(ShortlisterError):
    """Raised inside the pipeline once too many items have failed"""

    def __init__(self, skip_count: int, skip_limit: int, **kwargs):
        super().__init__(
            f"Skip limit exceeded: {skip_count} failures (limit {skip_limit})",
            error_code="SKIP_LIMIT_EXCEEDED",
            details={"skip_count": skip_count, "skip_limit": skip_limit},
            **kwargs
        )
        self.skip_count = skip_count
        self.skip_limit = skip_limit


STATUS_CODE_MAPPING: Dict[Type[ShortlisterError], int] = {
    ConfigurationError: 400,
    ExtractionError: 422,
    RecordNotFoundError: 404,
    PersistenceError: 500,
    OrganizationError: 500,
    ProcessingError: 500,
    SkipLimitExceededError: 500,
}


def status_code_for(exc: ShortlisterError) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in STATUS_CODE_MAPPING:
            return STATUS_CODE_MAPPING[exc_type]
    return 500


def map_to_http_exception(exc: ShortlisterError) -> HTTPException:
    """Map domain exceptions to HTTP exceptions"""
    detail = {
        "error": exc.to_dict(),
        "message": exc.message
    }
    return HTTPException(status_code=status_code_for(exc), detail=detail)


class ExceptionContext:
    """Context manager logging a failed operation and wrapping foreign exceptions.

    Domain exceptions pass through untouched; anything else is re-raised as
    ``wrap_as`` (ProcessingError unless told otherwise).
    """

    def __init__(self, operation: str, logger=None, wrap_as: Type[ShortlisterError] = None, **context):
        self.operation = operation
        self.logger = logger
        self.wrap_as = wrap_as or ProcessingError
        self.context = context

    def __enter__(self):
        if self.logger:
            self.logger.debug(f"Starting operation: {self.operation}", extra={"context": self.context})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            if self.logger:
                self.logger.debug(f"Operation completed: {self.operation}")
            return False

        if self.logger:
            self.logger.error(
                f"Operation failed: {self.operation} - {exc_val}",
                extra={"context": self.context, "exception_type": exc_type.__name__}
            )

        if isinstance(exc_val, ShortlisterError) or not isinstance(exc_val, Exception):
            return False

        wrapped = self.wrap_as(
            f"{self.operation} failed: {exc_val}",
            details=dict(self.context),
            cause=exc_val
        )
        raise wrapped from exc_val
