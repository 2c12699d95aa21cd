import os
from dotenv import load_dotenv

load_dotenv()

MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017/attendance_engine")

# Bounded waits on external signal sources (seconds)
INTEGRITY_TIMEOUT_SECONDS = float(os.getenv("INTEGRITY_TIMEOUT_SECONDS", "5"))
SITE_LOOKUP_TIMEOUT_SECONDS = float(os.getenv("SITE_LOOKUP_TIMEOUT_SECONDS", "3"))

# Integrity gate thresholds
MIN_CONFIDENCE_SCORE = int(os.getenv("MIN_CONFIDENCE_SCORE", "40"))
MIN_FINGERPRINT_SIMILARITY = int(os.getenv("MIN_FINGERPRINT_SIMILARITY", "50"))

# Shift pattern detection
PATTERN_LOOKBACK_DAYS = int(os.getenv("PATTERN_LOOKBACK_DAYS", "7"))
NIGHT_PATTERN_RATIO = float(os.getenv("NIGHT_PATTERN_RATIO", "0.6"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def validate_settings() -> None:
    problems = []
    if INTEGRITY_TIMEOUT_SECONDS <= 0:
        problems.append("INTEGRITY_TIMEOUT_SECONDS must be positive")
    if SITE_LOOKUP_TIMEOUT_SECONDS <= 0:
        problems.append("SITE_LOOKUP_TIMEOUT_SECONDS must be positive")
    if not 0 <= MIN_CONFIDENCE_SCORE <= 100:
        problems.append("MIN_CONFIDENCE_SCORE must be between 0 and 100")
    if not 0 < NIGHT_PATTERN_RATIO <= 1:
        problems.append("NIGHT_PATTERN_RATIO must be in (0, 1]")

    if problems:
        raise RuntimeError(
            f"Invalid attendance engine settings: {'; '.join(problems)}. "
            "Please check your .env file."
        )
