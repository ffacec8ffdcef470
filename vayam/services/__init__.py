class ServiceError(RuntimeError):
    """Recoverable service error (validation/uniqueness/etc.)."""

    def __init__(self, message: str, status: int = 400, details=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details
