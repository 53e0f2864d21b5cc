"""Exception hierarchy for blockwarden.

Repository errors derive from APIError and bubble unchanged to callers.
Session-level failures (authorization, empty selections, default list
provisioning) derive directly from BlockwardenError.
"""

from typing import Optional


class BlockwardenError(Exception):
    """Base class for all blockwarden errors."""


class NotAuthorized(BlockwardenError):
    """Platform permission to enforce blocks was denied or never granted."""

    def __init__(self, message: str = "Blocking is not authorized on this platform") -> None:
        super().__init__(message)


class InvalidSelection(BlockwardenError):
    """The current selection holds no apps and no domains."""

    def __init__(self, message: str = "Selection contains no apps or domains") -> None:
        super().__init__(message)


class FailedToCreateDefaultList(BlockwardenError):
    """The well-known default block list could not be found or created."""


class ProfileNotFound(BlockwardenError):
    """No blocking profile with the requested id exists."""


class APIError(BlockwardenError):
    """Base class for remote API failures."""


class NetworkError(APIError):
    """The request never produced an HTTP response."""


class Unauthorized(APIError):
    """The API rejected the credentials even after reauthentication."""

    def __init__(self, status_code: int = 401, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Unauthorized ({status_code})")


class AuthenticationFailed(APIError):
    """The auth-token endpoint refused to issue a token."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(f"Authentication failed: {message}")


class InvalidURL(APIError):
    """A request URL could not be constructed."""


class MalformedEndpoint(APIError):
    """An endpoint path is not of the form '/collection[/id...]'."""


class DecodingError(APIError):
    """A response body could not be decoded into the expected model."""


class ClientError(APIError):
    """A 4xx response other than the ones the client absorbs."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Client error {status_code}: {body[:200]}")


class ServerError(APIError):
    """A 5xx response."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Server error {status_code}: {body[:200]}")
