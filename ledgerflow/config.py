"""Configuration management using Pydantic Settings"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./ledgerflow.db"

    # Exchange rate source (USD -> VES)
    rate_api_url: str = "https://pydolarve.org/api/v2/dollar"
    rate_api_name: str = "PyDolarVe API"
    rate_api_bcv_path: str = "monitors.bcv.price"
    rate_api_parallel_path: str = "monitors.enparalelovzla.price"
    rate_cache_seconds: int = 30 * 60

    # Used only until a rate has been loaded successfully
    default_exchange_rate: float = 36.5
    default_rate_label: str = "Sin datos recientes"

    # Service
    service_name: str = "ledgerflow"
    log_level: str = "INFO"
    # Rate contexts kept per X-Session-ID before the least recent is dropped
    rate_max_sessions: int = 256

    # HTTP Client
    http_timeout_seconds: float = 10.0

    # Business rules
    minimum_profitability_percent: float = 10.0
    amount_tolerance: float = 0.01
    # Minimum rate search stops once the bracket is this narrow (percentage points)
    rate_search_tolerance: float = 0.01
    rate_search_max_iterations: int = 64

    # Currency allow-lists
    conversion_currencies: List[str] = ["USD", "VES"]
    cash_currencies: List[str] = ["USD", "EUR"]


settings = Settings()
