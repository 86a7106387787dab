from enum import Enum

from sqlalchemy.exc import OperationalError


class ErrorKind(Enum):
    CREDENTIAL_INVALID = 'credential-invalid'
    NETWORK_UNAVAILABLE = 'network-unavailable'
    PERMISSION_DENIED = 'permission-denied'
    UNKNOWN = 'unknown'


class ProviderError(Exception):
    """Failure reported by the authentication or document provider.

    ``str(error)`` is the human readable message shown to the user,
    ``error.kind`` is what callers branch on.
    """

    def __init__(self, kind, message):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self):
        return f'ProviderError({self.kind.value!r}, {self.message!r})'


def from_database_error(exc):
    if isinstance(exc, OperationalError):
        return ProviderError(ErrorKind.NETWORK_UNAVAILABLE, 'The database is unavailable. Try again later.')
    return ProviderError(ErrorKind.UNKNOWN, f'Database error: {exc.__class__.__name__}')
