"""Weather enrichment.

``fetch`` never raises: any failure yields the ``Unavailable`` sentinel so
recording a visit can never be blocked by the weather service.
"""

import logging
from datetime import datetime
from typing import Optional

import httpx

from doorlog.types import Weather

logger = logging.getLogger(__name__)

UNAVAILABLE = "Unavailable"

# WMO weather interpretation codes, grouped
_WMO_CONDITIONS = [
    ({0}, "Clear"),
    ({1, 2}, "Partly Cloudy"),
    ({3}, "Overcast"),
    ({45, 48}, "Fog"),
    ({51, 53, 55, 56, 57}, "Drizzle"),
    ({61, 63, 65, 66, 67, 80, 81, 82}, "Rain"),
    ({71, 73, 75, 77, 85, 86}, "Snow"),
    ({95, 96, 99}, "Thunderstorm"),
]


def condition_for_code(code: Optional[int]) -> str:
    if code is None:
        return UNAVAILABLE
    for codes, name in _WMO_CONDITIONS:
        if code in codes:
            return name
    return "Unknown"


class NullWeather:
    """Weather source used when no location is configured."""

    async def fetch(self, instant: datetime) -> Weather:
        return Weather(temp=None, condition=UNAVAILABLE)


class WeatherClient:
    """Current conditions from the Open-Meteo forecast API."""

    def __init__(
        self,
        latitude: float,
        longitude: float,
        url: str = "https://api.open-meteo.com/v1/forecast",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.latitude = latitude
        self.longitude = longitude
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def fetch(self, instant: datetime) -> Weather:
        params = {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "current": "temperature_2m,weather_code",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.url, params=params)
            response.raise_for_status()
            current = response.json().get("current") or {}
            temp = current.get("temperature_2m")
            return Weather(
                temp=round(float(temp), 1) if temp is not None else None,
                condition=condition_for_code(current.get("weather_code")),
            )
        except Exception as e:
            logger.warning(f"Weather lookup failed for {instant.isoformat()}: {e}")
            return Weather(temp=None, condition=UNAVAILABLE)
