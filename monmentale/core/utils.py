import math
import re
from datetime import date, datetime

TIME_OF_DAY_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

EARTH_RADIUS_METERS = 6_371_000

def parse_date(value) -> date:
    """Accept a date, a datetime or a YYYY-MM-DD string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid date '{value}'. Use YYYY-MM-DD")

def parse_time_of_day(value) -> str:
    """Validate an HH:MM time of day and return it zero-padded."""
    match = TIME_OF_DAY_RE.match(str(value).strip()) if value is not None else None
    if not match:
        raise ValueError(f"Invalid time '{value}'. Use HH:MM")
    return f"{int(match.group(1)):02d}:{match.group(2)}"

def minutes_of_day(value: str) -> int:
    hours, minutes = parse_time_of_day(value).split(":")
    return int(hours) * 60 + int(minutes)

def window_contains(outer_start: str, outer_end: str, start: str, end: str) -> bool:
    return minutes_of_day(outer_start) <= minutes_of_day(start) and minutes_of_day(end) <= minutes_of_day(outer_end)

def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]

def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))

def bounding_box(latitude: float, longitude: float, radius_meters: float):
    """Return (min_lat, max_lat, min_lon, max_lon) enclosing the radius."""
    d_lat = math.degrees(radius_meters / EARTH_RADIUS_METERS)
    cos_lat = math.cos(math.radians(latitude))
    if cos_lat < 1e-9:
        return latitude - d_lat, latitude + d_lat, -180.0, 180.0
    d_lon = math.degrees(radius_meters / (EARTH_RADIUS_METERS * cos_lat))
    return latitude - d_lat, latitude + d_lat, longitude - d_lon, longitude + d_lon
