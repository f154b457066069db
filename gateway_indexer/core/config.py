from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Gateway Indexer"
    ENVIRONMENT: str = "development"  # "production" switches logs to JSON
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./data/gateway-indexer.db"

    # Upstream node
    RPC_URL: str = ""  # Required when the indexer runs
    CONTRACT_ADDRESS: str = ""
    RPC_TIMEOUT_SECONDS: float = 10.0

    # Chain sync
    START_BLOCK: int = 0  # 0 = look back LOOKBACK_BLOCKS from head on first sync
    LOOKBACK_BLOCKS: int = 1000
    BATCH_SIZE: int = 1000  # Blocks per eth_getLogs query
    CONFIRMATIONS: int = 1  # 1 = the head block is treated as final
    POLL_INTERVAL_SECONDS: float = 5.0

    # Webhook delivery
    WEBHOOK_RETRY_INTERVAL_SECONDS: float = 30.0
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    WEBHOOK_MAX_ATTEMPTS: int = 5
    WEBHOOK_DISPATCH_BATCH_SIZE: int = 100

    # Error tracking (optional)
    SENTRY_DSN: str = ""

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
