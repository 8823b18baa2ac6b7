"""
Square Appointments client used by the booking tools.

This module wraps the Square Customers, Bookings and Catalog REST endpoints the voice
agent needs: finding the caller, listing their bookings, checking availability and
creating, cancelling or rescheduling a booking. Every method makes plain HTTP calls
through ``httpx.AsyncClient`` and raises ``SchedulingGatewayError`` on failure; retry
policy belongs to the caller.
"""

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from voice_relay.config.constants import (
    DEFAULT_SQUARE_API_VERSION,
    LOGGER_NAME,
    SQUARE_HTTP_TIMEOUT,
    SQUARE_PRODUCTION_URL,
    SQUARE_SANDBOX_URL,
)
from voice_relay.errors import SchedulingGatewayError

logger = logging.getLogger(LOGGER_NAME)

MAX_BOOKINGS = 20


def to_e164(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to E.164, assuming US numbers when no country code is given.

    ``+`` numbers pass through unchanged, 10 digits get ``+1``, 11 digits starting
    with 1 get ``+``; anything else is returned as ``+<digits>``.
    """
    if not phone:
        return None
    trimmed = phone.strip()
    if trimmed.startswith("+"):
        return "+" + re.sub(r"\D", "", trimmed)
    digits = re.sub(r"\D", "", trimmed)
    if not digits:
        return None
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return f"+{digits}"


def summarize_booking(booking: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce a Square booking object to what the agent needs to talk about it."""
    segments = booking.get("appointment_segments") or [{}]
    segment = segments[0]
    return {
        "id": booking.get("id"),
        "version": booking.get("version"),
        "status": booking.get("status"),
        "start_at": booking.get("start_at"),
        "location_id": booking.get("location_id"),
        "customer_id": booking.get("customer_id"),
        "service_variation_id": segment.get("service_variation_id"),
        "team_member_id": segment.get("team_member_id"),
        "duration_minutes": segment.get("duration_minutes"),
    }


class SquareSchedulingGateway:
    """
    Async client for the Square Appointments API.

    Args:
        access_token: Square access token
        environment: "sandbox" or "production"
        api_version: Value for the Square-Version header
        default_location_id: Location used when a tool call does not name one
        default_team_member_id: Team member used when a tool call does not name one
        client: Optional pre-built httpx client (tests pass one with a mock transport)
    """

    def __init__(
        self,
        access_token: str,
        environment: str = "sandbox",
        api_version: str = DEFAULT_SQUARE_API_VERSION,
        default_location_id: Optional[str] = None,
        default_team_member_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (
            SQUARE_PRODUCTION_URL if environment == "production" else SQUARE_SANDBOX_URL
        )
        self.default_location_id = default_location_id
        self.default_team_member_id = default_team_member_id
        self._client = client or httpx.AsyncClient(timeout=SQUARE_HTTP_TIMEOUT)
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Square-Version": api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        logger.info(f"Square scheduling gateway initialized ({environment})")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = await self._client.request(
                method, url, json=json, params=params, headers=self._headers
            )
        except httpx.HTTPError as exc:
            logger.error(f"Square request {method} {path} failed: {exc}")
            raise SchedulingGatewayError(f"Scheduling service unreachable: {exc}") from exc

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}

        if response.is_error:
            errors = body.get("errors", []) if isinstance(body, dict) else []
            detail = errors[0].get("detail") if errors else response.reason_phrase
            logger.warning(f"Square {method} {path} returned {response.status_code}: {detail}")
            raise SchedulingGatewayError(
                f"Scheduling service error: {detail}",
                status_code=response.status_code,
                errors=errors,
            )
        return body

    # Customers

    async def find_customer(
        self,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        given_name: Optional[str] = None,
        family_name: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Find a customer by exact email, then exact phone, then fuzzy name."""
        filters = []
        if email:
            filters.append({"email_address": {"exact": email.strip()}})
        if phone:
            filters.append({"phone_number": {"exact": to_e164(phone)}})
        name_filter = {}
        if given_name:
            name_filter["given_name"] = {"fuzzy": given_name.strip()}
        if family_name:
            name_filter["family_name"] = {"fuzzy": family_name.strip()}
        if name_filter:
            filters.append(name_filter)

        for query_filter in filters:
            body = await self._request(
                "POST", "/v2/customers/search", json={"query": {"filter": query_filter}}
            )
            customers = body.get("customers") or []
            if customers:
                return customers[0]
        return None

    async def ensure_customer(
        self,
        given_name: Optional[str] = None,
        phone: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Return the matching customer, creating one if none exists."""
        existing = await self.find_customer(phone=phone, email=email)
        if existing:
            return existing

        payload: Dict[str, Any] = {
            "idempotency_key": str(uuid.uuid4()),
            "given_name": given_name or "Caller",
        }
        if email:
            payload["email_address"] = email.strip()
        if phone:
            payload["phone_number"] = to_e164(phone)

        body = await self._request("POST", "/v2/customers", json=payload)
        customer = body.get("customer")
        if not customer:
            raise SchedulingGatewayError("Customer could not be created")
        logger.info(f"Created Square customer {customer.get('id')}")
        return customer

    # Catalog

    async def find_service_variation_id(self, service_name: str) -> Optional[str]:
        """Return the first appointment service variation whose item matches the name."""
        body = await self._request(
            "POST",
            "/v2/catalog/search-catalog-items",
            json={"text_filter": service_name, "product_types": ["APPOINTMENTS_SERVICE"]},
        )
        for item in body.get("items") or []:
            variations = (item.get("item_data") or {}).get("variations") or []
            if variations and variations[0].get("id"):
                return variations[0]["id"]
        return None

    async def get_service_variation_version(self, service_variation_id: str) -> int:
        body = await self._request("GET", f"/v2/catalog/object/{service_variation_id}")
        version = (body.get("object") or {}).get("version")
        if version is None:
            raise SchedulingGatewayError(
                "Could not resolve the version of the chosen service"
            )
        return version

    # Bookings

    async def lookup_bookings(
        self,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        given_name: Optional[str] = None,
        family_name: Optional[str] = None,
        location_id: Optional[str] = None,
        team_member_id: Optional[str] = None,
        start_at_min: Optional[str] = None,
        start_at_max: Optional[str] = None,
        include_past: bool = False,
    ) -> Dict[str, Any]:
        """List a customer's bookings, upcoming only unless ``include_past``."""
        customer = await self.find_customer(
            phone=phone, email=email, given_name=given_name, family_name=family_name
        )
        if customer is None:
            return {"ok": True, "customer": None, "bookings": [],
                    "note": "No customer found for those details."}

        if start_at_min is None and not include_past:
            start_at_min = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

        body = await self._request(
            "GET",
            "/v2/bookings",
            params={
                "customer_id": customer["id"],
                "location_id": location_id,
                "team_member_id": team_member_id,
                "start_at_min": start_at_min,
                "start_at_max": start_at_max,
                "limit": MAX_BOOKINGS,
            },
        )
        bookings = [summarize_booking(b) for b in body.get("bookings") or []]
        bookings.sort(key=lambda b: b.get("start_at") or "")
        return {
            "ok": True,
            "customer": {
                "id": customer.get("id"),
                "given_name": customer.get("given_name"),
                "family_name": customer.get("family_name"),
            },
            "bookings": bookings[:MAX_BOOKINGS],
        }

    async def search_availability(
        self,
        start_at: str,
        end_at: str,
        service_variation_id: Optional[str] = None,
        service_name: Optional[str] = None,
        location_id: Optional[str] = None,
        team_member_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        location_id = location_id or self.default_location_id
        team_member_id = team_member_id or self.default_team_member_id
        if not service_variation_id and service_name:
            service_variation_id = await self.find_service_variation_id(service_name)
        if not service_variation_id:
            raise SchedulingGatewayError("No bookable service matches that request")
        if not location_id:
            raise SchedulingGatewayError("No location configured for availability search")

        segment_filter: Dict[str, Any] = {"service_variation_id": service_variation_id}
        if team_member_id:
            segment_filter["team_member_id_filter"] = {"any": [team_member_id]}

        body = await self._request(
            "POST",
            "/v2/bookings/availability/search",
            json={
                "query": {
                    "filter": {
                        "location_id": location_id,
                        "segment_filters": [segment_filter],
                        "start_at_range": {"start_at": start_at, "end_at": end_at},
                    }
                }
            },
        )
        slots = [
            {
                "start_at": slot.get("start_at"),
                "location_id": slot.get("location_id"),
                "team_member_id": ((slot.get("appointment_segments") or [{}])[0]).get("team_member_id"),
            }
            for slot in body.get("availabilities") or []
        ]
        return {"ok": True, "service_variation_id": service_variation_id, "slots": slots[:MAX_BOOKINGS]}

    async def create_booking(
        self,
        start_at: str,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        given_name: Optional[str] = None,
        service_variation_id: Optional[str] = None,
        service_name: Optional[str] = None,
        location_id: Optional[str] = None,
        team_member_id: Optional[str] = None,
        seller_note: Optional[str] = None,
    ) -> Dict[str, Any]:
        location_id = location_id or self.default_location_id
        team_member_id = team_member_id or self.default_team_member_id
        if not location_id or not team_member_id:
            raise SchedulingGatewayError("Location and team member are required to book")
        if not service_variation_id and service_name:
            service_variation_id = await self.find_service_variation_id(service_name)
        if not service_variation_id:
            raise SchedulingGatewayError("No bookable service matches that request")

        customer = await self.ensure_customer(given_name=given_name, phone=phone, email=email)
        version = await self.get_service_variation_version(service_variation_id)

        booking: Dict[str, Any] = {
            "location_id": location_id,
            "start_at": start_at,
            "customer_id": customer["id"],
            "appointment_segments": [
                {
                    "service_variation_id": service_variation_id,
                    "service_variation_version": version,
                    "team_member_id": team_member_id,
                }
            ],
        }
        if seller_note:
            booking["seller_note"] = seller_note

        body = await self._request(
            "POST",
            "/v2/bookings",
            json={"booking": booking, "idempotency_key": str(uuid.uuid4())},
        )
        created = body.get("booking")
        if not created:
            raise SchedulingGatewayError("Booking was not created")
        logger.info(f"Created booking {created.get('id')} at {created.get('start_at')}")
        return {"ok": True, "booking": summarize_booking(created)}

    async def get_booking(self, booking_id: str) -> Dict[str, Any]:
        body = await self._request("GET", f"/v2/bookings/{booking_id}")
        booking = body.get("booking")
        if not booking:
            raise SchedulingGatewayError(f"Booking {booking_id} not found", status_code=404)
        return booking

    async def cancel_booking(self, booking_id: str) -> Dict[str, Any]:
        booking = await self.get_booking(booking_id)
        body = await self._request(
            "POST",
            f"/v2/bookings/{booking_id}/cancel",
            json={
                "idempotency_key": str(uuid.uuid4()),
                "booking_version": booking.get("version"),
            },
        )
        logger.info(f"Cancelled booking {booking_id}")
        return {"ok": True, "booking": summarize_booking(body.get("booking") or booking)}

    async def reschedule_booking(self, booking_id: str, start_at: str) -> Dict[str, Any]:
        booking = await self.get_booking(booking_id)
        body = await self._request(
            "PUT",
            f"/v2/bookings/{booking_id}",
            json={
                "idempotency_key": str(uuid.uuid4()),
                "booking": {"version": booking.get("version"), "start_at": start_at},
            },
        )
        logger.info(f"Rescheduled booking {booking_id} to {start_at}")
        return {"ok": True, "booking": summarize_booking(body.get("booking") or {})}
