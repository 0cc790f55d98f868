"""Error taxonomy shared by the pure models, the scheduler and the HTTP surface."""
from typing import Optional


class LaunchpadError(Exception):
    """Base class; ``status_code`` is what the HTTP surface responds with"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LaunchpadError):
    """Bad input shape or range"""
    status_code = 400


class InvalidAmount(ValidationError):
    pass


class InsufficientLiquidity(ValidationError):
    pass


class NotFoundError(LaunchpadError):
    status_code = 404


class StateConflictError(LaunchpadError):
    status_code = 400


class InvariantViolation(LaunchpadError):
    """Rejected before any external call is made"""
    status_code = 400


class InvalidCurveParameters(InvariantViolation):
    pass


class ExternalProviderError(LaunchpadError):
    """A launch provider call failed or timed out"""
    status_code = 400

    PROVIDER = 'PROVIDER'
    TIMEOUT = 'TIMEOUT'

    def __init__(self, message: str, kind: str = PROVIDER, operation: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.operation = operation


class AuthenticationError(LaunchpadError):
    status_code = 401


class ConfigurationError(LaunchpadError):
    """Server side misconfiguration, e.g. a missing admin key"""
    status_code = 500
