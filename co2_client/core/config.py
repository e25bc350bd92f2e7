"""
CO2 Client - Configuration
All settings loaded from environment variables (or .env for local runs)
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage (key-value table for settings and history)
    database_url: str = "sqlite+aiosqlite:///./co2_client.db"

    # MQTT broker (HiveMQ Cloud over secure WebSocket by default)
    mqtt_broker: str = "localhost"
    mqtt_port: int = 8884
    mqtt_transport: str = "websockets"  # "websockets" or "tcp"
    mqtt_ws_path: str = "/mqtt"
    mqtt_use_tls: bool = True
    mqtt_username: str = ""
    mqtt_password: str = ""
    mqtt_client_prefix: str = "co2-client"
    mqtt_topic: str = "sensors/esp32-co2-01/data"
    mqtt_keepalive: int = 60

    # Telegram alerts (optional - log-only notifications when empty)
    bot_token: str = ""
    alert_chat_id: int = 0

    # HTTP API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    log_level: str = "INFO"

    @property
    def telegram_enabled(self) -> bool:
        """Telegram sink is used only when both token and chat are set."""
        return bool(self.bot_token and self.alert_chat_id)

    class Config:
        env_file = ".env"  # Fallback for local development
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
