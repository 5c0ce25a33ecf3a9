"""
Application-wide constants to replace magic numbers and strings.
"""
# Timeouts (in seconds)
HTTP_TIMEOUT = 30.0
HTTP_LONG_TIMEOUT = 60.0

# Render polling
RENDER_POLL_BATCH_SIZE = 50

# Default values
DEFAULT_VISUAL_STYLE = (
    "children's book illustration in a soft digital painting style, warm pastel color palette, "
    "watercolor texture, clean line art, gentle shadows, flat lighting"
)
DEFAULT_PRONOUNS = "they/them"
DEFAULT_CHILD_AGE = 3
DEFAULT_BACKGROUND_MUSIC_VOLUME = 0.8
DEFAULT_NAME_VIDEO_MUSIC_VOLUME = 0.25  # sits under the letter narration

# File extensions
ALLOWED_MEDIA_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.webp', '.mp3', '.wav', '.mp4')

# Content types per asset kind
CONTENT_TYPES = {
    "image": ("image/png", "png"),
    "audio": ("audio/mpeg", "mp3"),
    "video": ("video/mp4", "mp4"),
}

# Redis cache TTL (in seconds)
JOB_STATUS_CACHE_TTL = 3600  # 1 hour

# Moderation priorities, highest first
MODERATION_PRIORITIES = ("high", "normal", "low")

# Review decisions
REVIEW_APPROVED = "approved"
REVIEW_REJECTED = "rejected"

# Reasons reported by the missing-assignment report
MISSING_NO_ASSIGNMENT = "no_assignment"
MISSING_NOT_APPROVED = "not_approved"

# Error text recorded on abandoned generation jobs
ABANDONED_JOB_ERROR = "abandoned"
