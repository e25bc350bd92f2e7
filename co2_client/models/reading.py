"""
Reading model - one telemetry sample published by the ESP32 sensor
"""

from pydantic import BaseModel, ConfigDict


class Reading(BaseModel):
    """Sensor reading from device. A negative CO2 value marks a failed channel."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    timestamp: int  # unix seconds
    co2_1: int  # ppm
    co2_2: int  # ppm
    wifi_rssi: int  # dBm
    heap_free: int  # bytes
    device: str

    @classmethod
    def decode(cls, payload: bytes | str) -> "Reading":
        """Decode an MQTT payload. Raises pydantic.ValidationError on bad input."""
        return cls.model_validate_json(payload)

    @property
    def valid_levels(self) -> list[int]:
        """CO2 values of channels that did not report a sensor error."""
        return [level for level in (self.co2_1, self.co2_2) if level >= 0]

    @property
    def max_co2(self) -> int | None:
        """Highest valid CO2 value, None when both channels failed."""
        levels = self.valid_levels
        return max(levels) if levels else None

    def __repr__(self) -> str:
        return f"<Reading {self.device} co2={self.co2_1}/{self.co2_2}ppm at {self.timestamp}>"
