"""SafeCheck: scheduled safety check-ins with emergency-contact alerts."""

__version__ = "0.1.0"
