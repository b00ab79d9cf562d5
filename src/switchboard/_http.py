"""Small HTTP-related constants shared across Switchboard.

Kept tiny to avoid circular imports between the transport and error mapping.
"""

from __future__ import annotations

# Upstream statuses a caller may reasonably retry with backoff.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})

JSON_HEADERS: dict[str, str] = {"Content-Type": "application/json"}
