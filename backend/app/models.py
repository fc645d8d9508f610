"""Pydantic models for API requests and responses."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

StatusValue = Literal["not-home", "opened", "estimate"]

# =============================================================================
# Event Models
# =============================================================================


class WeatherModel(BaseModel):
    """Weather snapshot attached to an event."""
    temp: float | None = None
    condition: str = ""


class LogEventRequest(BaseModel):
    """One visit, as sent by the client (camelCase on the wire)."""
    model_config = ConfigDict(populate_by_name=True)

    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    day_of_week: str = Field("", alias="dayOfWeek")
    groomed: str = ""
    mood: str = ""
    jacket: str = ""
    weather: WeatherModel = Field(default_factory=WeatherModel)
    interval: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    street_name: str = Field(..., min_length=1, max_length=200, alias="streetName")
    door_number: str = Field(..., pattern=r"^\d+$", max_length=10, alias="doorNumber")
    status: StatusValue
    timestamp: str = Field(..., min_length=1, max_length=64)
    user: str = Field(..., min_length=1, max_length=128)
    is_first_entry: bool = Field(False, alias="isFirstEntry")
    original_date: str | None = Field(None, alias="originalDate")  # Day the carry-over came from


class DeleteLogRequest(BaseModel):
    """Request to delete the event row holding a timestamp."""
    model_config = ConfigDict(populate_by_name=True)

    timestamp_to_delete: str = Field(..., min_length=1, max_length=64, alias="timestampToDelete")


# =============================================================================
# Response Models
# =============================================================================


class AggregationResult(BaseModel):
    """Outcome of each aggregate step: "ok", "skipped[: why]" or "failed: why"."""
    bucket: str
    position: str
    not_home: str = Field(serialization_alias="notHome")


class LogResponse(BaseModel):
    message: str = "Log added"
    aggregation: AggregationResult


class DeleteLogResponse(BaseModel):
    message: str = "Log deleted"
    matched_by: str = Field(serialization_alias="matchedBy")
    aggregation: AggregationResult


class LastPosition(BaseModel):
    """A user's last known address; ``isDefault`` when it belongs to someone else."""
    user: str
    street_name: str = Field(serialization_alias="streetName")
    door_number: str = Field(serialization_alias="doorNumber")
    is_default: bool = Field(False, serialization_alias="isDefault")


class LastLogResponse(BaseModel):
    last_log: LastPosition = Field(serialization_alias="lastLog")
