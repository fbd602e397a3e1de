import json
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from sparrow_routing.core.enums import ConnectionQuality, ProviderId


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    env: Literal["dev", "prod"] = "dev"
    project_name: str = "Sparrow Routing"
    api_v1_prefix: str = "/api/v1"
    log_level: str = "INFO"

    redis_url: str = "redis://redis:6379/0"
    routes_cache_enabled: bool = True
    routes_cache_ttl_sec: int = 300

    google_maps_api_key: str = ""
    mapbox_access_token: str = ""
    here_api_key: str = ""
    route_provider_order: Annotated[list[ProviderId], NoDecode] = Field(
        default_factory=lambda: [ProviderId.GOOGLE_MAPS, ProviderId.MAPBOX, ProviderId.HERE]
    )

    route_retry_attempts: int = Field(default=3, ge=1)
    route_retry_initial_delay_sec: float = Field(default=1.0, ge=0)
    route_retry_max_delay_sec: float = Field(default=10.0, ge=0)
    route_retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)
    route_adaptive_retry: bool = False

    # Value reported by the static connectivity probe used in server deployments.
    connection_quality: ConnectionQuality = ConnectionQuality.WIFI

    @field_validator("route_provider_order", mode="before")
    @classmethod
    def parse_provider_order(cls, value: object) -> list[str]:
        if isinstance(value, str):
            if not value.strip():
                return []
            if value.strip().startswith("["):
                try:
                    parsed = json.loads(value)
                    if isinstance(parsed, list):
                        value = parsed
                except json.JSONDecodeError:
                    pass
            if isinstance(value, str):
                value = value.split(",")
        if isinstance(value, (list, tuple)):
            items: list[str] = []
            for item in value:
                normalized = getattr(item, "value", str(item)).strip().lower()
                if normalized and normalized not in items:
                    items.append(normalized)
            return items
        return []

    def api_key_for(self, provider_id: ProviderId) -> str:
        mapping = {
            ProviderId.GOOGLE_MAPS: self.google_maps_api_key,
            ProviderId.MAPBOX: self.mapbox_access_token,
            ProviderId.HERE: self.here_api_key,
        }
        return mapping.get(provider_id, "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
