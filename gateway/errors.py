from pydantic import BaseModel

from gateway.error_codes import ERROR_TITLES, status_for


class PipelineError(Exception):
    """Raised by the pipeline for guard rejections and total fetch failures."""

    def __init__(self, code: str, message: str | None = None, *, status: int | None = None):
        super().__init__(message or code)
        self.code = code
        self.message = message
        # HTTP status defaults to the code's entry in error_codes.HTTP_STATUS
        self.status = status if status is not None else status_for(code)


class ErrorPayload(BaseModel):
    error: str
    code: str
    message: str | None = None
    processingTime: int | None = None
    request_id: str | None = None
    path: str | None = None


def problem(
    *,
    code: str,
    message: str | None = None,
    error: str | None = None,
    processing_time_ms: int | None = None,
    request_id: str | None = None,
    path: str | None = None,
) -> ErrorPayload:
    return ErrorPayload(
        error=error or ERROR_TITLES.get(code, "Request failed"),
        code=code,
        message=message,
        processingTime=processing_time_ms,
        request_id=request_id,
        path=path,
    )
