"""Gateway configuration loading and validation."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import AnyUrl, Field, NonNegativeInt, PositiveFloat, PositiveInt
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/wa-gateway/gateway.yaml"),
    Path("/etc/wa-gateway/gateway.yml"),
    Path("./config/gateway.yaml"),
    Path("./config/gateway.yml"),
)


class GatewaySettings(BaseSettings):
    """Validated settings for the session gateway process."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="WA_GATEWAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # HTTP surface
    host: str = Field(default="0.0.0.0", description="Bind address for the gateway HTTP API.")
    port: PositiveInt = Field(default=8000, description="Port for the gateway HTTP API.")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for the gateway process.",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to call the HTTP API from a browser.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    # Downstream consumer
    app_url: AnyUrl | None = Field(
        default=None,
        description="Base URL of the downstream application receiving device status and webhooks.",
    )
    notifier_timeout_seconds: PositiveFloat = Field(
        default=10.0,
        description="Timeout applied to every downstream HTTP call.",
    )

    # Storage
    sessions_dir: Path = Field(
        default=Path("./sessions"),
        description="Directory holding session credentials and chat caches.",
    )

    # Reconnection
    max_retries: NonNegativeInt = Field(
        default=0,
        description="Reconnection attempts before a session is torn down (values below 1 mean 1).",
    )
    reconnect_base_delay_seconds: PositiveFloat = Field(
        default=1.0,
        description="Base delay for reconnection backoff.",
    )
    reconnect_max_delay_seconds: PositiveFloat = Field(
        default=30.0,
        description="Maximum delay for reconnection backoff.",
    )

    # Request handling
    create_timeout_seconds: PositiveFloat = Field(
        default=60.0,
        description="How long the add-session route waits for a pairing code or connection.",
    )
    shutdown_drain_timeout_seconds: PositiveFloat = Field(
        default=5.0,
        description="Total budget for persisting chat caches on shutdown.",
    )
    default_send_delay_ms: NonNegativeInt = Field(
        default=1000,
        description="Pacing delay applied before outbound sends.",
    )

    # Protocol engine
    engine: Literal["dummy", "websocket"] = Field(
        default="websocket",
        description="Protocol client implementation to use.",
    )
    engine_ws_url: AnyUrl = Field(
        default="ws://127.0.0.1:8090/engine",
        description="WebSocket endpoint of the protocol engine sidecar.",
    )
    engine_version: list[int] = Field(
        default_factory=lambda: [2, 3000, 64123515],
        description="Protocol version advertised by the engine.",
    )
    browser: list[str] = Field(
        default_factory=lambda: ["Ubuntu", "Chrome", "22.04.4"],
        description="Browser triple presented to the remote service.",
    )
    connect_timeout_ms: PositiveInt = Field(default=60_000, description="Engine connect timeout.")
    default_query_timeout_ms: PositiveInt = Field(default=60_000, description="Engine query timeout.")
    retry_request_delay_ms: PositiveInt = Field(default=250, description="Engine request retry delay.")
    max_msg_retries: NonNegativeInt = Field(default=2, description="Engine message retry limit.")
    mutex_timeout_ms: PositiveInt = Field(default=60_000, description="Engine internal mutex timeout.")

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @property
    def effective_max_retries(self) -> int:
        return max(1, int(self.max_retries))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[GatewaySettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            cls._yaml_settings_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @staticmethod
    def _yaml_settings_source(settings_cls: type[GatewaySettings] | None = None) -> Dict[str, Any]:
        candidates: Iterable[Path] = GatewaySettings._resolve_candidate_paths()

        for path in candidates:
            data = GatewaySettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("WA_GATEWAY_CONFIG_FILE")
        if explicit:
            yield Path(explicit).expanduser()
        yield from DEFAULT_CONFIG_LOCATIONS

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any] | None:
        if not path.is_file():
            return None
        suffix = path.suffix.lower()
        try:
            with path.open("r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(handle)
                elif suffix == ".json":
                    raw = json.load(handle)
                else:
                    return None
        except OSError as exc:
            raise RuntimeError(f"Failed to read gateway config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid gateway config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Gateway config file {path} must contain a mapping at top level.")
        return raw


@lru_cache()
def get_settings() -> GatewaySettings:
    """Return memoized gateway settings."""

    settings = GatewaySettings()
    settings.sessions_dir = settings.sessions_dir.expanduser().resolve()
    return settings
