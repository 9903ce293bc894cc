from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
class Settings(BaseSettings):
    APP_ENV: str = "dev"
    API_BASE_URL: str = "http://localhost:4000"
    API_PREFIX: str = "/api"
    API_TOKEN: str | None = None
    HTTP_TIMEOUT: float = 10.0
    CURRENCY_SYMBOL: str = "₱"
    LOW_STOCK_THRESHOLD: int = 5
    TOP_ITEMS_LIMIT: int = 100
    SERVER_REPORT_POLICY: Literal["prefer_server", "local_only"] = "prefer_server"
    REPORT_TZ: str = "UTC"
    LOG_LEVEL: str = "INFO"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
settings = Settings()
