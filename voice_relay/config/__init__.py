"""
Configuration module for the voice relay.

Key components:
- constants: Protocol event names, audio formats, timing defaults and endpoints.
- settings: Environment-based settings validated with pydantic.
- logging_config: Console and rotating file logging.

Usage examples:
```python
from voice_relay.config.settings import get_settings
from voice_relay.config.logging_config import configure_logging

settings = get_settings()
logger = configure_logging(settings.log_level)
logger.info("Application started")
```
"""

# Config module initialization
