"""Weather adapter using Open-Meteo API (keyless, free tier)."""

from datetime import date

import httpx

from backend.app.models.weather import WeatherHour, WeatherRequest

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"


def map_weather_code(code: int | None) -> tuple[str, str]:
    """WMO weather code to (condition, icon code)."""
    if code is None:
        return "Unknown", "clear"
    if code == 0:
        return "Clear sky", "clear"
    if code <= 3:
        return "Partly cloudy", "partly-cloudy"
    if code in (45, 48):
        return "Fog", "fog"
    if 51 <= code <= 57:
        return "Drizzle", "drizzle"
    if 61 <= code <= 67:
        return "Rain", "rain"
    if 71 <= code <= 77:
        return "Snow", "snow"
    if 80 <= code <= 82:
        return "Rain showers", "rain"
    if 85 <= code <= 86:
        return "Snow showers", "snow"
    if 95 <= code <= 99:
        return "Thunderstorm", "thunderstorm"
    return "Unknown", "clear"


async def fetch_hourly_weather(
    request: WeatherRequest,
    base_url: str = OPEN_METEO_URL,
    client: httpx.AsyncClient | None = None,
) -> list[WeatherHour]:
    """Fetch an hourly forecast from Open-Meteo.

    Hours are reported in the location's own time zone (``timezone=auto``).

    Args:
        request: Location and inclusive date range
        base_url: Open-Meteo API base URL
        client: Optional httpx client (for testing with mocks)

    Returns:
        One WeatherHour per forecast hour

    Raises:
        httpx.HTTPError: On network or HTTP errors
        ValueError: If the response carries no hourly block
    """
    # Docs: https://open-meteo.com/en/docs
    params: dict[str, str | float] = {
        "latitude": request.location.lat,
        "longitude": request.location.lng,
        "hourly": "temperature_2m,weather_code,relative_humidity_2m,wind_speed_10m",
        "start_date": request.start_date.isoformat(),
        "end_date": request.end_date.isoformat(),
        "timezone": "auto",
    }

    close_client = False
    if client is None:
        client = httpx.AsyncClient(timeout=4.0)
        close_client = True

    try:
        response = await client.get(base_url, params=params)
        response.raise_for_status()
        data = response.json()
    finally:
        if close_client:
            await client.aclose()

    # Response structure: {hourly: {time: ["2026-07-01T13:00", ...], temperature_2m: [...], ...}}
    hourly = data.get("hourly")
    if not hourly:
        raise ValueError("No hourly data returned from Open-Meteo")

    times = hourly["time"]
    temps = hourly.get("temperature_2m") or [None] * len(times)
    codes = hourly.get("weather_code") or [None] * len(times)
    humidity = hourly.get("relative_humidity_2m") or [None] * len(times)
    wind = hourly.get("wind_speed_10m") or [None] * len(times)

    hours = []
    for i, stamp in enumerate(times):
        condition, icon_code = map_weather_code(codes[i])
        hours.append(
            WeatherHour(
                date=date.fromisoformat(stamp[:10]),
                hour=int(stamp[11:13]),
                temp_c=temps[i],
                condition=condition,
                icon_code=icon_code,
                humidity=humidity[i],
                wind_speed=wind[i],
            )
        )
    return hours
