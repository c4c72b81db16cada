# ---------------------------------------------------------------------------
# NOTE: This module is imported by every router so it stays free of
# heavyweight dependencies and side-effects.
# ---------------------------------------------------------------------------

# Base API prefix (all HTTP routes are served under /api/*)
API_PREFIX = "/api"

# Router prefixes (relative to API_PREFIX)
SYNC_PREFIX = "/sync"

# WebSocket endpoint – mounted under API_PREFIX + SYNC_PREFIX
WATCH_ENDPOINT = "/watch"

# Close codes for rejected WebSocket handshakes (mirror HTTP 401/403)
WS_CLOSE_UNAUTHORIZED = 4401
WS_CLOSE_FORBIDDEN = 4403
