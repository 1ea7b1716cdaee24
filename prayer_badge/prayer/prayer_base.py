from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Mapping, Optional
import logging

from .events import EventName, EventSet, build

DEFAULT_METHOD = "MWL"
DEFAULT_MADHAB = "Shafi"

METHOD_NAMES = {
    "MWL": "Muslim World League",
    "ISNA": "Islamic Society of North America",
    "Egypt": "Egyptian General Authority",
    "Karachi": "University of Islamic Sciences, Karachi",
    "UmmAlQura": "Umm Al-Qura University, Makkah",
    "Dubai": "Dubai",
    "Moonsighting": "Moonsighting Committee",
    "Qatar": "Qatar",
    "Singapore": "Singapore",
    "Kuwait": "Kuwait",
    "JAKIM": "Jabatan Kemajuan Islam Malaysia",
    "JAKIMKN": "Jabatan Kemajuan Islam Malaysia (Kelantan)",
    "Kemenag": "Kementerian Agama, Indonesia",
    "Tehran": "Institute of Geophysics, University of Tehran",
    "Turkey": "Turkey Diyanet",
    "France12": "France (12°)",
    "France15": "France (15°)",
    "France18": "France (18°)",
    "Russia": "Russia",
}


def method_display_name(method: str) -> str:
    return METHOD_NAMES.get(method, method)


def asr_school_name(madhab: str) -> str:
    return "Hanafi" if madhab == "Hanafi" else "Shafi/Maliki/Hanbali"


def local_timezone_name() -> str:
    """IANA name of the host timezone, falling back to UTC."""
    try:
        tz = datetime.now().astimezone().tzinfo
        key = getattr(tz, "key", None)
        if key:
            return key
        name = tz.tzname(None) if tz else None
        return name or "UTC"
    except Exception:
        return "UTC"


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    city: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None

    def display_name(self) -> str:
        if self.city and self.country:
            return f"{self.city}, {self.country}"
        return f"{self.latitude:.4f}, {self.longitude:.4f}"

    def to_record(self) -> Dict[str, Any]:
        record = {"latitude": self.latitude, "longitude": self.longitude}
        for key in ("city", "country", "timezone"):
            value = getattr(self, key)
            if value is not None:
                record[key] = value
        return record

    @classmethod
    def from_record(cls, record: Optional[Mapping[str, Any]]) -> Optional["Location"]:
        if not record or record.get("latitude") is None or record.get("longitude") is None:
            return None
        return cls(
            latitude=float(record["latitude"]),
            longitude=float(record["longitude"]),
            city=record.get("city"),
            country=record.get("country"),
            timezone=record.get("timezone"),
        )


@dataclass(frozen=True)
class Settings:
    location: Optional[Location] = None
    calculation_method: str = DEFAULT_METHOD
    madhab: str = DEFAULT_MADHAB
    notifications_enabled: bool = False


class PrayerCalculator(ABC):
    """Base class for prayer time calculation backends"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def calculate(self, location: Location, day: date, method: str, madhab: str) -> Dict[EventName, datetime]:
        """Get prayer times for a single calendar day
        Returns:
            Dictionary of event name -> timezone-aware instant
        """
        pass

    def calculate_event_set(self, location: Location, today: date, method: str, madhab: str) -> EventSet:
        """Compute today and tomorrow and build the EventSet that gets persisted."""
        self.logger.info(f"Calculating prayer times for {location.display_name()} on {today} ({method}, {madhab})")
        times = self.calculate(location, today, method, madhab)
        tomorrow_times = self.calculate(location, today + timedelta(days=1), method, madhab)
        return build(times, tomorrow_times, day=today)


class Geocoder(ABC):
    """Resolves addresses and coordinates to place names. Implemented outside this package."""

    @abstractmethod
    def forward_geocode(self, text: str) -> Location:
        pass

    @abstractmethod
    def reverse_geocode(self, latitude: float, longitude: float) -> Location:
        pass


class AdhanpyCalculator(PrayerCalculator):
    """Local astronomical calculation with the adhanpy package."""

    METHODS = {
        "MWL": "MUSLIM_WORLD_LEAGUE",
        "ISNA": "NORTH_AMERICA",
        "Egypt": "EGYPTIAN",
        "Karachi": "KARACHI",
        "UmmAlQura": "UMM_AL_QURA",
        "Dubai": "DUBAI",
        "Moonsighting": "MOON_SIGHTING_COMMITTEE",
        "Qatar": "QATAR",
        "Singapore": "SINGAPORE",
        "Kuwait": "KUWAIT",
    }

    ATTRIBUTES = {
        EventName.FAJR: "fajr",
        EventName.SUNRISE: "sunrise",
        EventName.DHUHR: "dhuhr",
        EventName.ASR: "asr",
        EventName.MAGHRIB: "maghrib",
        EventName.ISHA: "isha",
    }

    def _method(self, method: str):
        from adhanpy.calculation import CalculationMethod

        member = self.METHODS.get(method)
        if member is None or member not in CalculationMethod.__members__:
            self.logger.warning(f"Method {method} not supported by adhanpy, using {DEFAULT_METHOD}")
            member = self.METHODS[DEFAULT_METHOD]
        return CalculationMethod[member]

    def _time_zone(self, location: Location):
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        name = location.timezone or local_timezone_name()
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            self.logger.warning(f"Unknown timezone {name}, using UTC")
            return ZoneInfo("UTC")

    def _hanafi_times(self, coordinates, when: datetime, method: str, tz):
        """PrayerTimes with the later (Hanafi) Asr, or None if this adhanpy cannot express it."""
        from adhanpy.PrayerTimes import PrayerTimes
        from adhanpy.calculation.CalculationParameters import CalculationParameters
        from adhanpy.calculation.Madhab import Madhab

        try:
            parameters = CalculationParameters(method=self._method(method))
            parameters.madhab = Madhab.HANAFI
            return PrayerTimes(coordinates, when, calculation_parameters=parameters, time_zone=tz)
        except (TypeError, AttributeError) as e:
            self.logger.warning(f"Hanafi Asr not available ({e}), using standard Asr")
            return None

    def calculate(self, location: Location, day: date, method: str, madhab: str) -> Dict[EventName, datetime]:
        from adhanpy.PrayerTimes import PrayerTimes

        coordinates = (location.latitude, location.longitude)
        when = datetime(day.year, day.month, day.day)
        tz = self._time_zone(location)
        pt = None
        if madhab == "Hanafi":
            pt = self._hanafi_times(coordinates, when, method, tz)
        if pt is None:
            pt = PrayerTimes(coordinates, when, self._method(method), time_zone=tz)

        times = {}
        for name, attribute in self.ATTRIBUTES.items():
            value = getattr(pt, attribute, None)
            if value is not None and value.tzinfo is None:
                value = value.replace(tzinfo=tz)
            times[name] = value
        self.logger.debug(f"Calculated prayer times for {day}: {times}")
        return times
