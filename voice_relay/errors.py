"""
Exception hierarchy for the voice relay.

Errors local to a single message are handled where they occur; the types here
cover the cases that cross module boundaries: startup configuration, the AI
transport, the stream identity invariant and the scheduling gateway.
"""

from typing import Any, Dict, List, Optional


class VoiceRelayError(Exception):
    """Base class for all relay errors."""


class ConfigurationError(VoiceRelayError):
    """Required configuration is missing or invalid. Fatal at startup."""


class RealtimeConnectionError(VoiceRelayError):
    """The OpenAI Realtime websocket could not be opened."""


class StreamIdentityError(VoiceRelayError):
    """The telephony stream identifier changed after it was assigned."""


class ToolArgumentError(VoiceRelayError):
    """Tool call arguments failed validation."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []

    def to_payload(self) -> Dict[str, Any]:
        return {"type": "invalid_arguments", "message": str(self), "details": self.details}


class SchedulingGatewayError(VoiceRelayError):
    """
    A call to the scheduling gateway failed.

    Attributes:
        status_code: HTTP status returned by the gateway, if any
        errors: Error objects from the gateway response body
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": "gateway_error",
            "message": str(self),
            "status_code": self.status_code,
            "details": self.errors,
        }
