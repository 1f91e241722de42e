"""Errors raised by the Yeelight LAN client."""

from __future__ import annotations


class YeelightError(Exception):
    """Base exception for Yeelight LAN errors."""


class YeelightConnectionError(YeelightError):
    """Could not open or write to the control connection."""


class YeelightNotConnectedError(YeelightError):
    """A request was issued while no session is open."""


class YeelightConnectionLostError(YeelightError):
    """The session was torn down while a request was pending."""


class YeelightTimeoutError(YeelightError):
    """No result arrived for a request within the request timeout."""


class YeelightCommandError(YeelightError):
    """The fixture answered a request with an error object."""

    def __init__(self, code: int, message: str) -> None:
        """Initialize the error."""
        super().__init__(f"Yeelight error {code}: {message}")
        self.code = code
        self.message = message


class YeelightDiscoveryError(YeelightError):
    """The multicast search socket could not be set up or used."""
