"""Gateway configuration."""

from gateway.config.settings import GatewaySettings, get_settings

__all__ = ["GatewaySettings", "get_settings"]
