"""Shared constants for proximity routing and network settings."""

# Proximity audio settings
DEFAULT_MAX_DISTANCE = 20.0  # Beyond this, a player does not hear the speaker
DEFAULT_CURVE = "exponential"
DEFAULT_MASTER_VOLUME = 1.0

# Distance muffling (lowpass cutoff interpolates from near to far)
LOWPASS_NEAR_HZ = 20000.0
LOWPASS_FAR_HZ = 5000.0

# Spawn position for a freshly connected player
SPAWN_X = 0.0
SPAWN_Y = 64.0
SPAWN_Z = 0.0

# Per-connection outbox
OUTBOX_SIZE = 64  # Audio frames queued per recipient before dropping newest

# Roster broadcasts
ROSTER_DEBOUNCE = 0.05  # Coalesce connect/disconnect bursts within 50ms
ROSTER_INTERVAL = 1.0  # Periodic full roster, 0 disables

# Network
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8787
PING_INTERVAL = 20.0  # WebSocket keepalive ping
MAX_FRAME_SIZE = 1024 * 1024

# Debug log
LOG_FILE = "/tmp/proximity_relay.log"
