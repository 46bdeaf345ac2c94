"""
Centralized exception definitions for the batch transcription service.
"""

class AppError(Exception):
    """Base class for application errors."""
    def __init__(self, message: str, status_code: int = 500, detail: str = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail or message

class NotFoundError(AppError):
    """Raised when a queue item or history entry is not found."""
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)

class ValidationError(AppError):
    """Raised when a proposed source fails ingestion rules."""
    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=400)

class ConflictError(AppError):
    """Raised when a command conflicts with the current queue state."""
    def __init__(self, message: str = "Resource conflict"):
        super().__init__(message, status_code=409)

class ProcessingError(AppError):
    """Raised when an operation fails while an item is being worked on."""
    def __init__(self, message: str = "Processing failed"):
        super().__init__(message, status_code=422)

class DownloadError(ProcessingError):
    """Fetcher failure: network, unsupported platform, unavailable media."""
    def __init__(self, message: str = "Download failed"):
        super().__init__(message)

class EngineError(ProcessingError):
    """Transcription engine failure. Eligible for retry."""
    def __init__(self, message: str = "Transcription failed"):
        super().__init__(message)

class ExportError(ProcessingError):
    """Rendering or writing an export failed."""
    def __init__(self, message: str = "Export failed"):
        super().__init__(message)

class CancellationError(AppError):
    """Raised at a worker checkpoint once the session has been cancelled."""
    def __init__(self, message: str = "Cancelled by user"):
        super().__init__(message, status_code=409)
