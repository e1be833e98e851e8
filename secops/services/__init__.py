from secops.services.alert_dispatcher import AlertDispatcher
from secops.services.auto_blocker import AutoBlocker
from secops.services.reputation import ReputationService

__all__ = ["AlertDispatcher", "AutoBlocker", "ReputationService"]
