from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UpstreamChannel(BaseModel):
    """Single entry of the provider channel list"""
    model_config = ConfigDict(extra="ignore")

    station_id: str = Field(..., description="Provider station id")
    title: str = Field(..., description="Channel display name")
    channel_logo: str | None = Field(None, description="URL to channel logo")

    @field_validator("station_id", mode="before")
    @classmethod
    def coerce_station_id(cls, v: Any) -> Any:
        """Station ids arrive as strings or integers"""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class UpstreamChannelList(BaseModel):
    """Channel list response"""
    model_config = ConfigDict(extra="ignore")

    channels: list[UpstreamChannel]


class UpstreamGenre(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str


class UpstreamProgramme(BaseModel):
    """Single schedule entry of a schedule window response"""
    model_config = ConfigDict(extra="ignore")

    start_time: str
    end_time: str
    description: str | None = None
    release_year: int | None = None
    genres: list[UpstreamGenre] | None = None

    @field_validator("release_year", mode="before")
    @classmethod
    def blank_release_year(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class UpstreamScheduleWindow(BaseModel):
    """Schedule window response, keyed by station id

    Entries are validated one by one so a single broken entry does not
    reject the whole window.
    """
    model_config = ConfigDict(extra="ignore")

    channels: dict[str, list[Any] | None]

    @field_validator("channels", mode="before")
    @classmethod
    def empty_list_as_empty_map(cls, v: Any) -> Any:
        """An empty window is serialized as [] instead of {}"""
        if isinstance(v, list) and not v:
            return {}
        return v


class RegenerationResponse(BaseModel):
    """Outcome of a regeneration attempt"""
    status: str = Field(..., description="success, failed or skipped")
    message: str | None = Field(None, description="Human-readable outcome")
    error_kind: str | None = Field(None, description="Error class when status is failed")
    channels: int = 0
    programmes: int = 0
    started_at: str | None = None
    completed_at: str | None = None
    duration_seconds: float | None = None


class ServiceInfo(BaseModel):
    service: str
    version: str
    feed_generated_at: str | None = Field(None, description="ISO8601 modification time of the feed artifact")
    regeneration_in_progress: bool
    next_scheduled_check: str | None = None
    endpoints: dict[str, str]
