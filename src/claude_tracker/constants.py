"""Constants for the tracker.

This module centralizes configuration values used across the package.
"""

APP_NAME = "claude-tracker"

# Tracker's own namespace in the credential store
TRACKER_SERVICE_NAME = "claude-tracker"

# External tool's credential entry
CLAUDE_CODE_SERVICE_NAME = "Claude Code-credentials"
CLAUDE_CODE_CREDENTIALS_FILENAME = ".credentials.json"
CLAUDE_CONFIG_DIR_ENV = "CLAUDE_CONFIG_DIR"

# Polling (seconds)
DEFAULT_POLL_INTERVAL_SECONDS = 180
MIN_POLL_INTERVAL_SECONDS = 30
POLL_STAGGER_SECONDS = 0.1

# Display
DEFAULT_TICK_INTERVAL_SECONDS = 1.0
LIVE_THRESHOLD_SECONDS = 120

# HTTP
DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0
USAGE_ENDPOINT = "https://api.anthropic.com/api/oauth/usage"
PROFILE_ENDPOINT = "https://api.anthropic.com/api/oauth/profile"
SESSION_USAGE_ENDPOINT = "https://claude.ai/api/organizations/{org_id}/usage"
OAUTH_BETA_HEADER = "oauth-2025-04-20"
CLAUDE_CODE_USER_AGENT = "claude-code/2.0.32"
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/18.3 Safari/605.1.15"
)

# Config file
CONFIG_FILENAME = "config.json"
CONFIG_VERSION = 1
