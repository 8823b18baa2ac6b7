"""
Booking tools exposed to the Realtime model.

Each tool has a JSON schema (sent in ``session.update``), a pydantic model that
validates the arguments the model produced, and the scheduling gateway method it
maps to. The set is fixed at import time.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from voice_relay.errors import ToolArgumentError
from voice_relay.services.scheduling_gateway import SquareSchedulingGateway

PHONE_DESCRIPTION = "Caller phone number, ideally E.164 such as +13135551212"
ISO_DESCRIPTION = "RFC 3339 timestamp, e.g. 2025-03-14T15:00:00Z"


class ToolArguments(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class LookupBookingsArgs(ToolArguments):
    phone: Optional[str] = None
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    start_at_min: Optional[str] = None
    start_at_max: Optional[str] = None
    include_past: bool = False


class SearchAvailabilityArgs(ToolArguments):
    start_at: str
    end_at: str
    service_name: Optional[str] = None
    service_variation_id: Optional[str] = None
    team_member_id: Optional[str] = None
    location_id: Optional[str] = None


class CreateBookingArgs(ToolArguments):
    start_at: str
    phone: Optional[str] = None
    email: Optional[str] = None
    given_name: Optional[str] = None
    service_name: Optional[str] = None
    service_variation_id: Optional[str] = None
    team_member_id: Optional[str] = None
    location_id: Optional[str] = None
    seller_note: Optional[str] = Field(default=None, max_length=500)


class CancelBookingArgs(ToolArguments):
    booking_id: str = Field(..., min_length=1)


class RescheduleBookingArgs(ToolArguments):
    booking_id: str = Field(..., min_length=1)
    start_at: str


def _function(name: str, description: str, properties: Dict[str, Any],
              required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "description": description,
        "parameters": {
            "type": "object",
            "properties": properties,
            "required": required or [],
        },
    }


TOOL_SCHEMAS: List[Dict[str, Any]] = [
    _function(
        "lookup_bookings",
        "Look up a caller's upcoming appointments by phone number or email.",
        {
            "phone": {"type": "string", "description": PHONE_DESCRIPTION},
            "email": {"type": "string"},
            "given_name": {"type": "string"},
            "family_name": {"type": "string"},
            "start_at_min": {"type": "string", "description": ISO_DESCRIPTION},
            "start_at_max": {"type": "string", "description": ISO_DESCRIPTION},
            "include_past": {"type": "boolean", "description": "Include past appointments"},
        },
    ),
    _function(
        "search_availability",
        "Find open appointment slots for a service between two times.",
        {
            "start_at": {"type": "string", "description": ISO_DESCRIPTION},
            "end_at": {"type": "string", "description": ISO_DESCRIPTION},
            "service_name": {"type": "string", "description": "Service the caller asked for"},
            "service_variation_id": {"type": "string"},
            "team_member_id": {"type": "string"},
            "location_id": {"type": "string"},
        },
        ["start_at", "end_at"],
    ),
    _function(
        "create_booking",
        "Book an appointment for the caller at a confirmed open slot.",
        {
            "start_at": {"type": "string", "description": ISO_DESCRIPTION},
            "phone": {"type": "string", "description": PHONE_DESCRIPTION},
            "email": {"type": "string"},
            "given_name": {"type": "string"},
            "service_name": {"type": "string"},
            "service_variation_id": {"type": "string"},
            "team_member_id": {"type": "string"},
            "location_id": {"type": "string"},
            "seller_note": {"type": "string"},
        },
        ["start_at"],
    ),
    _function(
        "cancel_booking",
        "Cancel one of the caller's appointments by booking id.",
        {"booking_id": {"type": "string"}},
        ["booking_id"],
    ),
    _function(
        "reschedule_booking",
        "Move one of the caller's appointments to a new start time.",
        {
            "booking_id": {"type": "string"},
            "start_at": {"type": "string", "description": ISO_DESCRIPTION},
        },
        ["booking_id", "start_at"],
    ),
]

ARGUMENT_MODELS: Dict[str, Type[ToolArguments]] = {
    "lookup_bookings": LookupBookingsArgs,
    "search_availability": SearchAvailabilityArgs,
    "create_booking": CreateBookingArgs,
    "cancel_booking": CancelBookingArgs,
    "reschedule_booking": RescheduleBookingArgs,
}

ToolHandler = Callable[..., Awaitable[Dict[str, Any]]]


def validate_arguments(name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate decoded arguments for a known tool.

    Returns:
        Keyword arguments for the gateway method, unset optionals omitted

    Raises:
        ToolArgumentError: If the arguments do not fit the tool's model
    """
    model = ARGUMENT_MODELS[name]
    try:
        validated = model(**arguments)
    except ValidationError as e:
        raise ToolArgumentError(
            f"Invalid arguments for {name}",
            details=e.errors(include_url=False, include_context=False),
        ) from e
    return validated.model_dump(exclude_none=True)


def gateway_handlers(gateway: SquareSchedulingGateway) -> Dict[str, ToolHandler]:
    """Bind each tool name to the gateway method that serves it."""
    return {
        "lookup_bookings": gateway.lookup_bookings,
        "search_availability": gateway.search_availability,
        "create_booking": gateway.create_booking,
        "cancel_booking": gateway.cancel_booking,
        "reschedule_booking": gateway.reschedule_booking,
    }
