# menu_site/errors.py
from typing import Optional


class MenuError(Exception):
    """Base class for everything this package raises."""


class ConfigurationError(MenuError):
    """Missing or invalid credentials/connection settings. Fatal at startup."""


class CacheIOError(MenuError):
    """Storage failure inside a cache store. Never leaves the store."""


# ---------------------------
# Upstream failures
# ---------------------------
class UpstreamError(MenuError):
    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message)
        self.endpoint = endpoint


class TransportError(UpstreamError):
    """Network, TLS or timeout failure reaching the upstream API."""


class UpstreamStatusError(UpstreamError):
    def __init__(self, status_code: int, message: Optional[str] = None, endpoint: Optional[str] = None):
        self.status_code = status_code
        self.detail = message
        text = f"API Error: HTTP {status_code}"
        if self.is_unauthorized:
            text += " - Unauthorized"
            if message:
                text += f": {message}"
            text += " (check that the API token is valid and not expired)"
        elif message:
            text += f": {message}"
        super().__init__(text, endpoint=endpoint)

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class MalformedResponseError(UpstreamError):
    """A 200 response whose body is not the JSON envelope we expect."""
