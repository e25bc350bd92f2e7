"""
Alert Evaluator - decides whether a reading should raise a notification
Pure functions, callable without a live connection.
"""

from dataclasses import dataclass
from enum import Enum

from co2_client.models.reading import Reading
from co2_client.models.settings import MonitorSettings

ALERT_TITLE = "High CO2 Level Alert!"


@dataclass(frozen=True)
class Alert:
    """Notification payload."""

    title: str
    body: str
    level: int  # ppm


def evaluate_alert(reading: Reading, settings: MonitorSettings) -> Alert | None:
    """Return an Alert when the highest valid channel is above the high threshold."""
    if not settings.notifications_enabled:
        return None

    level = reading.max_co2
    if level is None:
        # Both channels reported a sensor error
        return None

    if level > settings.high_threshold:
        return Alert(
            title=ALERT_TITLE,
            body=f"CO2 level is {level} ppm. Please ventilate the area.",
            level=level,
        )
    return None


class AirQuality(str, Enum):
    ERROR = "error"
    GOOD = "good"
    MODERATE = "moderate"
    HIGH = "high"


AIR_QUALITY_DESCRIPTIONS = {
    AirQuality.ERROR: "Sensor reading error",
    AirQuality.GOOD: "Air quality is excellent",
    AirQuality.MODERATE: "Consider improving ventilation",
    AirQuality.HIGH: "Poor air quality - ventilate immediately",
}


def classify_air_quality(reading: Reading, settings: MonitorSettings) -> AirQuality:
    """Bucket a reading against the low/high thresholds."""
    level = reading.max_co2
    if level is None:
        return AirQuality.ERROR
    if level < settings.low_threshold:
        return AirQuality.GOOD
    if level < settings.high_threshold:
        return AirQuality.MODERATE
    return AirQuality.HIGH
