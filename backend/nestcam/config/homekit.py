"""
HomeKit bridge configuration and pairing helpers.

Settings come from HOMEKIT_* environment variables (or .env). A pairing code
or setup id left unset is generated per process by the accessory host.
"""
import re
import secrets
import string
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HOMEKIT_PORT = 51826
DEFAULT_BRIDGE_NAME = "Nest Cam Bridge"
DEFAULT_BIND_ADDRESS = "0.0.0.0"
PERSIST_FILE_NAME = "accessory.state"

# HAP category advertised in the setup URI
HOMEKIT_CATEGORY_BRIDGE = 2
# Setup payload flag for IP transport
SETUP_FLAG_IP = 0x2

_PINCODE_RE = re.compile(r'^\d{3}-\d{2}-\d{3}$')
_SETUP_ID_RE = re.compile(r'^[0-9A-Z]{4}$')
_BASE36 = string.digits + string.ascii_uppercase

# Rejected by HomeKit in addition to repeated and straight runs
_WEAK_PINCODES = {"12345678", "87654321", "01234567", "23456789", "12121212", "12312312"}


def is_valid_pincode(code: str) -> bool:
    """
    Whether a pairing code is well formed (XXX-XX-XXX) and not one of the
    trivial codes HomeKit refuses.
    """
    if not _PINCODE_RE.match(code):
        return False
    digits = code.replace("-", "")
    if len(set(digits)) == 1:
        return False
    return digits not in _WEAK_PINCODES


def generate_pincode() -> str:
    while True:
        digits = f"{secrets.randbelow(10 ** 8):08d}"
        code = f"{digits[:3]}-{digits[3:5]}-{digits[5:]}"
        if is_valid_pincode(code):
            return code


def generate_setup_id() -> str:
    return ''.join(secrets.choice(_BASE36) for _ in range(4))


def generate_setup_uri(setup_code: str, setup_id: str, category: int = HOMEKIT_CATEGORY_BRIDGE) -> str:
    """
    HomeKit setup URI for QR pairing: X-HM://<9 base36 chars><setup id>.

    The payload packs the category (bits 0-7), transport flags (8-11) and
    the pairing code as an integer (12 and up).

    Raises:
        ValueError: Malformed setup_code or setup_id
    """
    if not _PINCODE_RE.match(setup_code):
        raise ValueError(f"Invalid setup_code format: {setup_code}. Expected XXX-XX-XXX")
    if not _SETUP_ID_RE.match(setup_id):
        raise ValueError(f"setup_id must be 4 uppercase alphanumerics, got {setup_id!r}")

    payload = (int(setup_code.replace("-", "")) << 12) | (SETUP_FLAG_IP << 8) | (category & 0xFF)

    encoded = []
    while payload:
        payload, digit = divmod(payload, 36)
        encoded.append(_BASE36[digit])
    return f"X-HM://{''.join(reversed(encoded)).zfill(9)}{setup_id}"


class HomekitConfig(BaseSettings):
    """
    HAP accessory server settings.

    Attributes:
        port: HAP server port
        bridge_name: Bridge name shown in the Home app
        persist_dir: Directory holding the HAP pairing state file
        pincode: Pairing code in XXX-XX-XXX format (generated when unset)
        setup_id: Setup id for the pairing URI (generated when unset)
        bind_address: Address the HAP server binds to
    """

    model_config = SettingsConfigDict(
        env_prefix="HOMEKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    port: int = DEFAULT_HOMEKIT_PORT
    bridge_name: str = DEFAULT_BRIDGE_NAME
    persist_dir: str = "data/homekit"
    pincode: Optional[str] = None
    setup_id: Optional[str] = None
    bind_address: str = DEFAULT_BIND_ADDRESS

    @field_validator('pincode')
    @classmethod
    def validate_pincode(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_valid_pincode(v):
            raise ValueError(f"HOMEKIT_PINCODE {v!r} is malformed or too trivial for HomeKit")
        return v

    @field_validator('setup_id')
    @classmethod
    def validate_setup_id(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _SETUP_ID_RE.match(v):
            raise ValueError("HOMEKIT_SETUP_ID must be 4 uppercase alphanumerics")
        return v

    @property
    def persist_file(self) -> str:
        return str(Path(self.persist_dir) / PERSIST_FILE_NAME)

    def ensure_persist_dir(self) -> None:
        Path(self.persist_dir).mkdir(parents=True, exist_ok=True)


def get_homekit_config() -> HomekitConfig:
    return HomekitConfig()
