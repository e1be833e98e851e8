"""Mock AbuseIPDB and VirusTotal API responses for local development and testing.

All values use realistic but entirely fictional data.  The "bad" address
sits in a documentation range; the verdicts do not describe any real host.
"""

from __future__ import annotations

import copy

# ---------------------------------------------------------------------------
# AbuseIPDB /api/v2/check
# ---------------------------------------------------------------------------

MOCK_ABUSE_MALICIOUS = {
    "data": {
        "ipAddress": "203.0.113.66",
        "isPublic": True,
        "ipVersion": 4,
        "isWhitelisted": False,
        "abuseConfidenceScore": 100,
        "countryCode": "DE",
        "usageType": "Data Center/Web Hosting/Transit",
        "isp": "Example Transit GmbH",
        "domain": "example.net",
        "isTor": True,
        "totalReports": 1847,
        "numDistinctUsers": 312,
        "lastReportedAt": "2024-02-18T12:00:00+00:00",
    }
}

MOCK_ABUSE_CLEAN = {
    "data": {
        "ipAddress": "198.51.100.7",
        "isPublic": True,
        "ipVersion": 4,
        "isWhitelisted": False,
        "abuseConfidenceScore": 0,
        "countryCode": "US",
        "usageType": "Content Delivery Network",
        "isp": "Example CDN",
        "totalReports": 0,
        "numDistinctUsers": 0,
        "lastReportedAt": None,
    }
}

# ---------------------------------------------------------------------------
# VirusTotal /api/v3/ip_addresses/{ip}
# ---------------------------------------------------------------------------

MOCK_VT_MALICIOUS = {
    "data": {
        "id": "203.0.113.66",
        "type": "ip_address",
        "attributes": {
            "country": "DE",
            "reputation": -81,
            "last_analysis_date": 1708300800,
            "last_analysis_stats": {
                "malicious": 36,
                "suspicious": 2,
                "harmless": 30,
                "undetected": 12,
                "timeout": 0,
            },
            "tags": ["tor", "proxy"],
        },
    }
}

MOCK_VT_CLEAN = {
    "data": {
        "id": "198.51.100.7",
        "type": "ip_address",
        "attributes": {
            "country": "US",
            "reputation": 5,
            "last_analysis_date": 1708214400,
            "last_analysis_stats": {
                "malicious": 1,
                "suspicious": 0,
                "harmless": 70,
                "undetected": 9,
                "timeout": 0,
            },
            "tags": [],
        },
    }
}


def abuseipdb_response(malicious: bool = True, ip: str | None = None) -> dict:
    body = copy.deepcopy(MOCK_ABUSE_MALICIOUS if malicious else MOCK_ABUSE_CLEAN)
    if ip:
        body["data"]["ipAddress"] = ip
    return body


def virustotal_response(malicious: bool = True, ip: str | None = None) -> dict:
    body = copy.deepcopy(MOCK_VT_MALICIOUS if malicious else MOCK_VT_CLEAN)
    if ip:
        body["data"]["id"] = ip
    return body
