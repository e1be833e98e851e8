"""Security-operations automation core: auto-blocking, reputation, alerting."""

__version__ = "1.0.0"
