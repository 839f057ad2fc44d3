"""Internal constants shared across the library."""

DEFAULT_STATE_DIR = "/var/lib/pyiramp"
DEFAULT_BRIDGE_INBOUND = f"{DEFAULT_STATE_DIR}/cec-to-amp.json"
DEFAULT_BRIDGE_OUTBOUND = f"{DEFAULT_STATE_DIR}/amp-to-cec.json"
DEFAULT_SOURCE_NAME = "pyiramp"

# Outbound state file must stay readable by the CEC listener, which
# usually runs as root or a dedicated user.
BRIDGE_FILE_MODE = 0o644

VOLUME_MIN = 0
VOLUME_MAX = 100

# ------------------------------------------------------------------
# Timing defaults (seconds)
# ------------------------------------------------------------------

SENSOR_POLL_INTERVAL = 5.0
VERIFY_DELAY = 15.0
RECONCILE_INTERVAL = 15.0
VOLUME_STEP_DELAY = 0.2
VOLUME_FLOOR_SETTLE_DELAY = 1.0
BRIDGE_POLL_INTERVAL = 0.1
OUTLET_POWER_ON_DELAY = 3.0
VISION_CHECK_INTERVAL = 30.0
VISION_MIN_REFRESH = 10.0
CAMERA_TIMEOUT = 5.0


def clamp_volume(level: int) -> int:
    """Clamp *level* into the ``0..100`` volume range."""
    return max(VOLUME_MIN, min(VOLUME_MAX, int(level)))
