import os
import sys
import tempfile
from pathlib import Path


# Check if we're running in a test environment
def _is_testing():
    """Check if code is running under pytest."""
    return "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"WARNING: {name}={raw!r} is not an integer, using {default}", file=sys.stderr)
        return default


# Backend root. Every endpoint path (e.g. "/auth/signin") is appended to it.
API_BASE_URL = os.environ.get("WHATEAT_API_BASE_URL", "https://whateatbe.onrender.com/api/v1").rstrip("/")

# Access tokens are refreshed once they are this close to expiring.
TOKEN_REFRESH_WINDOW_SECONDS = _env_int("WHATEAT_TOKEN_REFRESH_WINDOW_SECONDS", 300)

# Saved recipes page size
DEFAULT_PAGE_LIMIT = _env_int("WHATEAT_PAGE_LIMIT", 20)

# Client-side cover image limit (10 MiB). The upload ticket may tighten it.
MAX_COVER_IMAGE_BYTES = _env_int("WHATEAT_MAX_COVER_IMAGE_BYTES", 10 * 1024 * 1024)

REQUEST_TIMEOUT_SECONDS = _env_int("WHATEAT_REQUEST_TIMEOUT_SECONDS", 30)

# Secret storage namespace and location. Tests never touch the real home directory.
SECRET_SERVICE = os.environ.get("WHATEAT_SECRET_SERVICE", "com.whatEat.auth")
SECRETS_DIR = Path(
    os.environ.get(
        "WHATEAT_SECRETS_DIR",
        os.path.join(tempfile.gettempdir(), "whateat-test-secrets") if _is_testing() else "~/.whateat",
    )
).expanduser()

IMAGE_CACHE_SIZE = _env_int("WHATEAT_IMAGE_CACHE_SIZE", 100)

LOG_LEVEL = os.environ.get("WHATEAT_LOG_LEVEL", "INFO")

# Daily refresh accepts 1..5 suggestions per meal
MIN_COUNT_PER_MEAL = 1
MAX_COUNT_PER_MEAL = 5
DEFAULT_COUNT_PER_MEAL = 2
