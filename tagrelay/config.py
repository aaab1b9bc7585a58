from functools import lru_cache
from urllib.parse import urlsplit

from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

DEFAULT_KEY_API_URL = "https://measurelake-249969218520.us-central1.run.app/givemekey"


class Settings(BaseSettings):
    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    LOG_JSON: bool = True
    # Upstream tag-manager server (scheme, host and base path)
    GTM_SERVER_URL: str = ""
    # Key issuer
    KEY_API_URL: str = DEFAULT_KEY_API_URL
    MEASURELAKE_API_KEY: str = ""
    KEY_API_BEARER_TOKEN: str = ""
    KEY_REFRESH_INTERVAL_SECONDS: float = 3600.0
    # Usage accounting, disabled when empty
    USAGE_API_URL: str = ""
    USAGE_TIMEOUT_SECONDS: float = 5.0
    # Relay
    UPSTREAM_TIMEOUT_SECONDS: float = 30.0
    RELAY_PATH_PREFIX: str = "/proxy"
    IP_PARAM_KEYS: str = "uip,ip"  # Comma-separated, in order of preference
    MAX_BODY_SIZE: int = 1048576

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def upstream_origin(self) -> str:
        parts = urlsplit(self.GTM_SERVER_URL)
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def ip_param_keys(self) -> list[str]:
        return [k.strip() for k in self.IP_PARAM_KEYS.split(",") if k.strip()]

    def require(self) -> None:
        """
        Validate the settings the relay cannot start without.

        Raises:
            ConfigurationError: If a required setting is missing or malformed
        """
        missing = [
            name for name in ("GTM_SERVER_URL", "MEASURELAKE_API_KEY")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        parts = urlsplit(self.GTM_SERVER_URL)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ConfigurationError("GTM_SERVER_URL must be an absolute http(s) URL")

        if not self.RELAY_PATH_PREFIX.startswith("/"):
            raise ConfigurationError("RELAY_PATH_PREFIX must start with '/'")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
