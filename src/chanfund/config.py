"""
Configuration management using pydantic-settings.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    rpc_url: str = "http://127.0.0.1:8332"
    rpc_user: str = ""
    rpc_password: str = ""
    rpc_timeout: float = Field(default=30.0, gt=0, description="RPC timeout in seconds")

    # Pass the caller's fee rate to fundrawtransaction instead of letting the
    # node's own fee estimation decide
    forward_fee_rate: bool = False

    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings()
