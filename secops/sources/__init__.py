from secops.sources.abuseipdb import AbuseIPDBSource
from secops.sources.base import ReputationSource
from secops.sources.virustotal import VirusTotalSource

__all__ = ["AbuseIPDBSource", "ReputationSource", "VirusTotalSource"]
