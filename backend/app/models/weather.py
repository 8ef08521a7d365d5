"""Weather models."""

from datetime import date

from pydantic import BaseModel, Field, model_validator

from backend.app.models.common import Geo


class WeatherRequest(BaseModel):
    """Hourly forecast query for one location and date range (also the cache key)."""

    location: Geo
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _ordered(self) -> "WeatherRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class WeatherHour(BaseModel):
    """Hourly forecast in the location's local time."""

    date: date
    hour: int = Field(..., ge=0, le=23)
    temp_c: float | None
    condition: str
    icon_code: str
    humidity: float | None
    wind_speed: float | None
