"""Exception hierarchy for appserver"""

from typing import Optional


class AppServerError(Exception):
    """Base class for all appserver errors"""
    pass


class ConfigurationError(AppServerError):
    """A service, model or repository could not be resolved from configuration"""
    pass


class TokenDecodeError(AppServerError):
    """Raised when a session cookie token is malformed or its signature fails"""
    pass


class RepositoryError(AppServerError):
    """Raised when a session or user repository operation fails"""
    pass


class MiddlewareRegistrationError(AppServerError):
    """Raised when a middleware register()/unregister() is not awaitable"""
    pass


class ServerBindError(AppServerError):
    """Raised when the listening socket cannot be bound"""

    def __init__(self, message: str, errno: Optional[int] = None):
        super().__init__(message)
        self.errno = errno
