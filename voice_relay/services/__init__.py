"""
Services module for external API integrations.

Key components:
- scheduling_gateway: Async client for Square Appointments (customers, catalog,
  availability and bookings), used by the model's scheduling tools.

Usage example:
```python
from voice_relay.services.scheduling_gateway import SquareSchedulingGateway

gateway = SquareSchedulingGateway(token, environment="sandbox")
result = await gateway.lookup_bookings(phone="+15551234567")
await gateway.aclose()
```
"""

# Services module initialization
