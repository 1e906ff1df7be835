"""Well-known names and defaults shared across the runtime."""

BASE_SKILL_NAME = "@perstack/base"
BASE_SKILL_VERSION = "0.1.0"
ATTEMPT_COMPLETION_TOOL = "attemptCompletion"

DEFAULT_TEMPERATURE = 0.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_TIMEOUT_SECONDS = 300.0

RUNTIME_VERSION = "0.1.0"
