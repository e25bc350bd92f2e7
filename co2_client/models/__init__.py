# Data models
from co2_client.models.kv import KeyValue
from co2_client.models.reading import Reading
from co2_client.models.settings import MonitorSettings, MonitorSettingsUpdate

__all__ = ["KeyValue", "Reading", "MonitorSettings", "MonitorSettingsUpdate"]
