"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_HISTORY_LIMIT = 30
DEFAULT_RECENT_LIMIT = 10
DEFAULT_LATE_THRESHOLD_MINUTES = 15
DEFAULT_DEVICE_INFO = "Unknown device"

# Face match below this confidence is flagged in the logs, never blocked.
LOW_FACE_MATCH_CONFIDENCE = 70.0

# A session shorter than this share of the class duration counts as half a day.
HALF_DAY_RATIO = 0.5

PHOTO_MAX_SIZE = (800, 600)
PHOTO_JPEG_QUALITY = 75
PHOTO_MAX_BYTES = 10 * 1024 * 1024
PHOTO_FOLDER = "attendance-photos"
