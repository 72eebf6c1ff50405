"""Configuration management for the chat relay."""

import os
from typing import Any

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .streaming.models import MalformedLinePolicy


class Configuration:
    """Manages configuration and environment variables for the chat relay."""

    def __init__(self) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for endpoints and secrets
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        config_path = os.path.join(os.path.dirname(__file__), "config.yaml")
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @staticmethod
    def _require_env(name: str) -> str:
        value = os.getenv(name, "").strip()
        if not value:
            raise ConfigurationError(f"{name} environment variable is not set")
        return value

    @property
    def api_endpoint(self) -> str:
        """Base URL of the chat backend, without a trailing slash.

        Raises:
            ConfigurationError: If API_ENDPOINT is not set.
        """
        return self._require_env("API_ENDPOINT").rstrip("/")

    @property
    def sessions_endpoint(self) -> str:
        """Base URL used for session calls.

        Sessions may be routed through a tunnel (TUNNEL_ENDPOINT); when no
        tunnel is configured the chat backend endpoint is used.
        """
        tunnel = os.getenv("TUNNEL_ENDPOINT", "").strip()
        if tunnel:
            return tunnel.rstrip("/")
        try:
            return self.api_endpoint
        except ConfigurationError as e:
            raise ConfigurationError("TUNNEL_ENDPOINT not set") from e

    @property
    def chat_id(self) -> str:
        """Chat assistant id on the backend.

        Raises:
            ConfigurationError: If API_CHAT_ID is not set.
        """
        return self._require_env("API_CHAT_ID")

    @property
    def api_key(self) -> str:
        """Bearer token for the chat backend; empty when not configured."""
        return os.getenv("API_KEY", "")

    def get_tts_credentials(self) -> dict[str, str]:
        """Get TTS provider credentials from the environment.

        Returns:
            Dictionary with api_key, api_secret, app_id and res_id.
        """
        return {
            "api_key": os.getenv("TTS_API_KEY", ""),
            "api_secret": os.getenv("TTS_API_SECRET", ""),
            "app_id": os.getenv("TTS_APPID", ""),
            "res_id": os.getenv("TTS_RES_ID", ""),
        }

    def get_server_config(self) -> dict[str, Any]:
        """Get HTTP server configuration from YAML.

        Returns:
            Server configuration dictionary with validated values.

        Raises:
            ValueError: If required server parameters are missing or invalid.
        """
        server_config = self._config.get("server", {})

        required_keys = ["host", "port", "workers", "keepalive_timeout"]
        for key in required_keys:
            if key not in server_config:
                raise ValueError(
                    f"server.{key} must be explicitly configured in config.yaml"
                )

        port = server_config["port"]
        if not isinstance(port, int) or not 0 < port < 65536:
            raise ValueError("server.port must be an integer between 1 and 65535")
        if server_config["workers"] < 1:
            raise ValueError("server.workers must be at least 1")

        return {**server_config}

    def get_http_client_config(self) -> dict[str, Any]:
        """Get upstream HTTP client configuration from YAML.

        Returns:
            HTTP client configuration dictionary with validated values.

        Raises:
            ValueError: If required HTTP client parameters are missing or invalid.
        """
        http_config = self._config.get("upstream", {}).get("http_client", {})

        required_keys = [
            "max_connections", "max_keepalive", "keepalive_expiry",
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout",
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"upstream.http_client.{key} must be explicitly configured "
                    "in config.yaml"
                )

        max_conn = http_config["max_connections"]
        max_keepalive = http_config["max_keepalive"]

        if max_conn < 1:
            raise ValueError("http_client.max_connections must be at least 1")
        if max_keepalive > max_conn:
            raise ValueError("http_client.max_keepalive must be <= max_connections")

        # read_timeout may be null: a long generation can idle between chunks
        for key in ["connect_timeout", "write_timeout", "pool_timeout"]:
            if http_config[key] <= 0:
                raise ValueError(f"http_client.{key} must be positive")

        return {**http_config}

    def get_streaming_config(self) -> dict[str, Any]:
        """Get streaming configuration from YAML.

        Returns:
            Streaming configuration with ``malformed_line_policy`` resolved to
            a MalformedLinePolicy member.
        """
        streaming_config = {**self._config.get("streaming", {})}
        policy = streaming_config.get("malformed_line_policy", "warn")
        try:
            streaming_config["malformed_line_policy"] = MalformedLinePolicy(policy)
        except ValueError as e:
            valid = [p.value for p in MalformedLinePolicy]
            raise ValueError(
                f"streaming.malformed_line_policy must be one of: {valid}"
            ) from e
        return streaming_config

    def get_tts_config(self) -> dict[str, Any]:
        """Get TTS provider host settings from YAML.

        Raises:
            ValueError: If host or path is missing.
        """
        tts_config = self._config.get("tts", {})
        for key in ["host", "path"]:
            if not tts_config.get(key):
                raise ValueError(f"tts.{key} must be explicitly configured")
        if not tts_config["path"].startswith("/"):
            raise ValueError("tts.path must start with '/'")
        return {**tts_config}

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML.

        Returns:
            Logging configuration dictionary.
        """
        return self._config.get("logging", {})
