"""
Exception hierarchy for the relay.
"""

from typing import Optional, Union


class ChatterError(Exception):
    """Base class for all relay errors."""


class ConfigurationError(ChatterError):
    """Required configuration is missing or invalid."""


class BridgeError(ChatterError):
    """Model invocation failed."""


class NoBackendAvailable(BridgeError):
    """No model backend is configured, or it rejected our credentials."""


class BackendError(BridgeError):
    """The model backend returned a structured failure."""

    def __init__(self, message: str, code: Optional[Union[int, str]] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class TelegramTransportError(ChatterError):
    """An outbound Telegram Bot API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
