from typing import Optional


class JambolError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UpstreamError(JambolError):
    """The football data provider answered with a failure."""

    status_code = 500

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ConfigurationError(JambolError):
    status_code = 500

    def __init__(self, variable: str):
        super().__init__(f"Server configuration error: missing {variable}")
        self.variable = variable


class ValidationError(JambolError):
    status_code = 400


class NotFoundError(JambolError):
    status_code = 404


class ConflictError(JambolError):
    status_code = 409


class ForbiddenError(JambolError):
    status_code = 403


class UnauthorizedError(JambolError):
    status_code = 401

    def __init__(self, message: str = "unauthorized"):
        super().__init__(message)


class MaintenanceError(JambolError):
    status_code = 503

    def __init__(self, message: str = "maintenance mode: betting is temporarily unavailable"):
        super().__init__(message)
