"""
Nest cloud endpoints and process-wide constants.

Two host sets exist: production and the field-test environment used for
pre-release devices. Which one applies is decided once per process from the
Google issue token (see NestSession.field_test).
"""
from dataclasses import dataclass
from typing import Tuple

# Polling (seconds)
UPDATE_INTERVAL_SECONDS = 10
SESSION_RENEWAL_SECONDS = 3600
EVENT_LOOKBACK_SECONDS = 60

# Lifetime requested for each issued Nest JWT
TOKEN_LIFETIME_SECONDS = 3600

# Substring of the issue token that marks the field-test environment
FIELD_TEST_MARKER = "home.ft.nest.com"

GOOGLE_OAUTH_REFERER = "https://accounts.google.com/o/oauth2/iframe"
ISSUE_JWT_URL = "https://nestauthproxyservice-pa.googleapis.com/v1/issue_jwt"
ISSUE_JWT_POLICY_ID = "authproxy-oauth-policy"

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_4) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/83.0.4103.61 Safari/537.36"
)

MANUFACTURER = "Nest"

# Indexed by the camera's numeric hardware type; lower indices are unused
MODEL_TYPES: Tuple[str, ...] = (
    "",
    "",
    "",
    "",
    "",
    "",
    "",
    "",
    "Nest Cam Indoor",
    "Nest Cam Outdoor",
    "Nest Cam IQ Indoor",
    "Nest Cam IQ Outdoor",
    "Nest Hello",
)

UNKNOWN_MODEL = "Unknown"

# Capability / detector tags that gate optional features
DETECTOR_MOTION = "motion"
CAPABILITY_INDOOR_CHIME = "indoor_chime"
EVENT_TYPE_DOORBELL = "doorbell"


def model_name(hardware_type: int) -> str:
    """Map a hardware type code to a model name; out of range is "Unknown"."""
    if 0 <= hardware_type < len(MODEL_TYPES):
        return MODEL_TYPES[hardware_type]
    return UNKNOWN_MODEL


@dataclass(frozen=True)
class NestEndpoints:
    """Host names for one environment."""
    field_test: bool = False

    @property
    def camera_api_host(self) -> str:
        if self.field_test:
            return "https://webapi.camera.home.ft.nest.com"
        return "https://webapi.camera.home.nest.com"

    @property
    def nest_api_host(self) -> str:
        if self.field_test:
            return "https://home.ft.nest.com"
        return "https://home.nest.com"


def is_field_test_token(issue_token: str) -> bool:
    return FIELD_TEST_MARKER in issue_token
