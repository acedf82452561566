"""Configuration management using Pydantic Settings"""

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Service
    service_name: str = "lcr-gateway"
    log_level: str = "INFO"

    # Storage
    storage_backend: Literal["memory", "database"] = "memory"
    database_url: str = "sqlite:///./lcr_gateway.db"

    # Card network
    processor_backend: Literal["emulated", "http"] = "emulated"
    card_network_base: str = "http://localhost:8001"
    http_timeout_seconds: float = 5.0
    emulator_seed: Optional[int] = None
    emulator_failure_rate: float = 0.05
    emulator_decline_rate: float = 0.10
    emulator_min_latency_ms: int = 0
    emulator_max_latency_ms: int = 0

    # Tokens
    token_validity_months: int = 36
    default_token_network: str = "VISA"

    # Risk
    risk_signal_mode: Literal["none", "country", "sampled"] = "country"


settings = Settings()
