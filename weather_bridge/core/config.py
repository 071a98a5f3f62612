from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Weather Bridge"

    # Logging
    log_level: str = "INFO"
    log_file: str = "weather-bridge.log"  # empty disables the rotating file

    # Device transport: "serial" for real hardware, "sim" for development
    device_mode: str = "serial"
    serial_read_timeout_s: float = 0.5
    sim_interval_s: float = 2.0

    # Record schema: "sensor" (sensorId + location) or "device" (deviceID + mac + location)
    record_schema: str = "sensor"

    # Emulated peers; empty path means the packaged default list
    sensor_profiles_path: str = ""

    # Time-series store: "influx", "sqlite" or "none"
    store_backend: str = "influx"

    influxdb_url: str = "http://localhost:8086"
    influxdb_token: str = ""
    influxdb_org: str = ""
    influxdb_bucket: str = "weather"
    influxdb_timeout_ms: int = 10_000

    sqlite_path: str = Field(default="weather.db")

    # Point encoding
    measurement_mode: str = "shared"  # "shared" | "per_sensor"
    measurement_name: str = "weather-data"
    point_tags: dict[str, str] = Field(
        default_factory=lambda: {"crop": "grapes", "plot": "1", "region": "west"}
    )

    # Broadcast
    broadcast_queue_size: int = 256


settings = Settings()
