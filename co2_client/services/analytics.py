"""
Analytics Service - numeric summaries of the reading history
Feeds the statistics and chart screens; no rendering here.
"""

from dataclasses import dataclass

from co2_client.models.reading import Reading
from co2_client.models.settings import MonitorSettings

STATS_WINDOW = 50
CHART_WINDOW = 20


@dataclass(frozen=True)
class HistoryStats:
    average: int
    maximum: int
    minimum: int
    good_percentage: int
    moderate_percentage: int
    high_percentage: int
    total_readings: int


def summarize_history(
    readings: list[Reading] | tuple[Reading, ...],
    settings: MonitorSettings,
    window: int = STATS_WINDOW,
) -> HistoryStats | None:
    """
    Summarize both CO2 channels over the most recent readings.

    Args:
        readings: History, oldest first
        settings: Thresholds used for the good / moderate / high split
        window: How many of the latest readings to include

    Returns:
        HistoryStats, or None when there is no positive CO2 value
    """
    recent = list(readings)[-window:] if window > 0 else []
    values = [
        level
        for r in recent
        for level in (r.co2_1, r.co2_2)
        if level > 0
    ]
    if not values:
        return None

    total = len(values)
    good = sum(1 for v in values if v < settings.low_threshold)
    high = sum(1 for v in values if v >= settings.high_threshold)
    moderate = total - good - high

    return HistoryStats(
        average=round(sum(values) / total),
        maximum=max(values),
        minimum=min(values),
        good_percentage=round(good / total * 100),
        moderate_percentage=round(moderate / total * 100),
        high_percentage=round(high / total * 100),
        total_readings=total,
    )


def chart_series(
    readings: list[Reading] | tuple[Reading, ...],
    window: int = CHART_WINDOW,
) -> dict[str, list[int]]:
    """Per-channel series for a line chart; failed channels plot as 0."""
    recent = list(readings)[-window:] if window > 0 else []
    return {
        "timestamps": [r.timestamp for r in recent],
        "co2_1": [max(0, r.co2_1) for r in recent],
        "co2_2": [max(0, r.co2_2) for r in recent],
    }
