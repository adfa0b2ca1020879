"""Configuration architecture using pydantic-settings for typed environment loading."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class NetworkConfig(BaseSettings):
    """Hermez network binding."""

    model_config = SettingsConfigDict(
        env_prefix="HERMEZ_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    node_url: str = "https://api.testnet.hermez.io"
    # Rinkeby
    chain_id: int = 4
    # Empty disables account creation authorisations
    rollup_contract: str = ""


class ClientConfig(BaseSettings):
    """Node API client runtime configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    timeout_seconds: float = 30.0
    max_retries: int = 5
    poll_interval: float = 10.0


class WalletConfig(BaseSettings):
    """Sender wallet configuration."""

    model_config = SettingsConfigDict(
        env_prefix="WALLET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mnemonic: SecretStr = SecretStr("")
    index: int = 0


class Settings:
    """Root settings aggregating all configuration sections."""

    def __init__(self) -> None:
        self.network = NetworkConfig()
        self.client = ClientConfig()
        self.wallet = WalletConfig()


# Global settings instance - lazily loaded
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
