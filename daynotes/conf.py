"""
Daynotes client settings.

Values are read once from the environment at import time.
"""
import os

# Session keys
SESSION_KEY = os.environ.get("DAYNOTES_SESSION_KEY", "user_id")
SESSION_ID = os.environ.get("DAYNOTES_SESSION_ID", "session_id")
SESSION_USER = "user"
# in-memory slot for the derived key; never part of persisted session data
SESSION_CONTENT_KEY = "__content_key__"

# Server API
API_URL = os.environ.get("DAYNOTES_API_URL", "http://localhost:5000")
API_TIMEOUT = int(os.environ.get("DAYNOTES_API_TIMEOUT", "30"))

# Note constraints, as enforced by the server schema
NOTE_MAX_LENGTH = 140
DATE_FORMAT = "%Y-%m-%d"
PERIOD_TYPES = ("day", "week", "month")

# Placeholder returned for a note whose content could not be decrypted
DECRYPTION_FAILED_TEXT = "[Could not decrypt this note]"
