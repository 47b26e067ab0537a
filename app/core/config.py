from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # Basic settings
    PROJECT_NAME: str = "inks"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./inks.db"

    # ActivityPub settings
    SERVER_NAME: str = "localhost"
    ACTIVITYPUB_PROTOCOL: str = "https"
    ACCOUNT_NAME: str = "inks"
    TAG_YEAR: int = 2019
    USER_AGENT: str = "inks-ap/1.0"

    # Key settings（PEM 字串優先，其次讀取檔案）
    PRIVATE_KEY_PEM: Optional[str] = None
    PRIVATE_KEY_PATH: str = "./keys/private.pem"

    # Admin API（取代原本需登入的存檔表單）
    ADMIN_TOKEN: Optional[str] = None

    # Inbox log
    INBOX_LOG_PATH: str = "./savedinbox.json"

    # Federation timing（秒）
    SETTLE_DELAY: float = 60.0
    RETRY_INTERVAL: float = 3600.0
    MAX_RETRIES: int = 3
    ACTOR_FETCH_TIMEOUT: float = 5.0
    DELIVERY_TIMEOUT: float = 30.0

    # Delivery worker pool
    DELIVERY_WORKERS: int = 4
    DELIVERY_QUEUE_SIZE: int = 1000

    # Remote box cache; None = entries never expire
    BOX_CACHE_TTL: Optional[float] = None
    SIGNED_FETCH: bool = False

    # CORS settings
    ALLOWED_HOSTS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
