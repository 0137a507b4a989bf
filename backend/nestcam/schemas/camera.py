"""Pydantic schemas for Nest camera API payloads"""
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CameraSnapshot(BaseModel):
    """
    Point-in-time copy of a camera's remote attributes.

    Validated once when the remote payload is parsed and immutable afterwards;
    a refresh replaces the whole snapshot. Unknown wire fields are ignored.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    uuid: str = Field(..., min_length=1, description="Stable camera identifier, the only join key")
    name: str = Field(default="", description="Display name set in the Nest app")
    serial_number: str = Field(default="", description="Hardware serial number")
    software_version: str = Field(
        default="",
        alias="combined_software_version",
        description="Firmware version string",
    )
    type: int = Field(default=-1, description="Numeric hardware type code")
    is_streaming_enabled: bool = Field(default=False, description="Whether the camera is switched on")
    detectors: List[str] = Field(default_factory=list, description="Supported detector kinds, e.g. motion")
    capabilities: List[str] = Field(default_factory=list, description="Capability tags, e.g. indoor_chime")
    nexus_talk_host: Optional[str] = Field(
        default=None,
        alias="direct_nexustalk_host",
        description="Direct streaming host",
    )
    api_host: Optional[str] = Field(
        default=None,
        alias="nexus_api_http_server",
        description="Attribute API host used for event queries",
    )

    @field_validator('detectors', 'capabilities', mode='before')
    @classmethod
    def none_as_empty(cls, v):
        """The API sends null instead of an empty list for some models"""
        if v is None:
            return []
        return v

    @field_validator('name', 'serial_number', 'software_version', mode='before')
    @classmethod
    def none_as_blank(cls, v):
        if v is None:
            return ""
        return v

    @property
    def enabled(self) -> bool:
        return self.is_streaming_enabled

    def has_detector(self, kind: str) -> bool:
        return kind in self.detectors

    def has_capability(self, tag: str) -> bool:
        return tag in self.capabilities

    def with_enabled(self, enabled: bool) -> "CameraSnapshot":
        """Copy of this snapshot carrying a new streaming flag."""
        return self.model_copy(update={"is_streaming_enabled": enabled})

    def to_context(self) -> dict:
        """Wire-shaped dict stored as accessory context."""
        return self.model_dump(by_alias=True)


class CuepointEvent(BaseModel):
    """One entry of the camera's recent event list (most recent first on the wire)"""

    model_config = ConfigDict(extra="ignore")

    is_important: bool = Field(default=False, description="Whether Nest flagged the event as important")
    start_time: Optional[float] = Field(default=None, description="Event start as epoch seconds")
    types: List[str] = Field(default_factory=list, description="Event kinds, e.g. motion, person, doorbell")

    @field_validator('types', mode='before')
    @classmethod
    def none_as_empty(cls, v):
        if v is None:
            return []
        return v

    def has_type(self, kind: str) -> bool:
        return kind in self.types

    def matches(self, alert_types: Iterable[str]) -> bool:
        """
        Whether the event is one of the configured alert types.

        Events without any type tag are treated as matching.
        """
        if not self.types:
            return True
        wanted = set(alert_types)
        return any(t in wanted for t in self.types)
