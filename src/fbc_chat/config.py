"""Chat client configuration constants.

Centralizes magic numbers and wire-level strings shared by the chat modules.
"""

# Send throttle
DEBOUNCE_DELAY_MS = 1000  # Minimum interval between two accepted sends

# Stream framing
DATA_PREFIX = "data: "  # Only lines starting with this prefix carry payloads

# Shown in the assistant bubble when a request fails
FALLBACK_MESSAGE = (
    "I'm having trouble processing your request right now. "
    "Please try again in a moment."
)

# Endpoints
DEFAULT_BASE_URL = "http://localhost:3000"
USER_ENDPOINT = "/api/chat"
ADMIN_ENDPOINT = "/api/chat/admin"

# Session correlation headers (opaque passthrough)
DEMO_SESSION_HEADER = "x-demo-session-id"
INTELLIGENCE_SESSION_HEADER = "x-intelligence-session-id"
ANONYMOUS_SESSION = "anonymous"
ADMIN_SESSION_ID = "admin-session"

# Transport
DEFAULT_TIMEOUT_S = 300.0  # Streaming replies can take minutes

# Cost tracking
DAILY_BUDGET_USD = 10.0
RECENT_REQUESTS_LIMIT = 5

# Chat modes
CHAT_MODE_USER = "user"
CHAT_MODE_ADMIN = "admin"
