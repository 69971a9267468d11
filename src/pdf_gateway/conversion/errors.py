"""Domain exceptions raised by the conversion pipeline.

Each carries the HTTP status, a stable code and a client-safe message. The
web layer translates them to responses; the underlying cause stays in the
server log.
"""


class ConversionError(Exception):
    status_code = 500
    code = "internal_error"
    message = "Internal Error"


class WorkspaceError(ConversionError):
    """Workspace directory could not be created."""


class InvalidUpload(ConversionError):
    """Body is not multipart/form-data or its framing is malformed."""

    status_code = 400
    code = "invalid_upload"
    message = "Invalid multipart body"


class NoFileUploaded(ConversionError):
    status_code = 400
    code = "no_file"
    message = "No file uploaded"


class UploadInterrupted(ConversionError):
    """Upload stream broke off mid-transfer (maps to HTTP 400, client-attributable)."""

    status_code = 400
    code = "stream_interrupted"
    message = "Stream interrupted"


class UploadStorageError(ConversionError):
    """Target file for the upload could not be created."""


class PayloadTooLarge(ConversionError):
    status_code = 413
    code = "payload_too_large"
    message = "Payload too large"


class ConverterFailed(ConversionError):
    """Engine exited with a non-zero status."""

    code = "conversion_failed"
    message = "Conversion failed"


class ConverterLaunchFailed(ConversionError):
    """Engine process could not be started at all."""

    code = "conversion_execution_failed"
    message = "Conversion execution failed"


class ConversionTimedOut(ConversionError):
    status_code = 504
    code = "conversion_timeout"
    message = "Conversion timed out"


class OutputNotFound(ConversionError):
    """Engine reported success but left no artifact in the workspace."""

    code = "output_not_found"
    message = "PDF generation failed - output not found"


class OutputReadFailed(ConversionError):
    code = "read_failed"
    message = "Read PDF failed"
