from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv(override=True)

class Settings(BaseSettings):
    PROJECT_NAME: str = "Readia Auth"
    # Application settings
    PORT: int | None = 3001
    HOST: str | None = "127.0.0.1"
    VERSION: str | None = "1.0.0"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "*"

    # SSL settings
    SSL_KEY: str | None = None
    SSL_CERT: str | None = None

    # SQLAlchemy database URL
    DATABASE_URL: str = "sqlite:///./readia.db"

    # Sign-in message context, echoed into every challenge
    APP_NAME: str = "Readia.io"
    AUTH_DOMAIN: str = "localhost:5173"
    AUTH_URI: str = "http://localhost:5173"

    # Login configuration
    ENCODE_KEY: str | None = None
    ENCODE_ALGORITHM: str | None = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int | None = 86400 # 24 hours
    NONCE_EXPIRY_SECONDS: int | None = 300 # 5 minutes
    NONCE_RATE_LIMIT_PER_MINUTE: float = 10.0
    NONCE_RATE_LIMIT_BURST: int = 5
    STORE_PURGE_INTERVAL_SECONDS: int = 60

    # Redis settings, in-memory stores are used when REDIS_HOST is empty
    REDIS_HOST: str | None = None
    REDIS_PORT: int | None = 6379
    REDIS_MAX_CONNECTIONS: int | None = 20
    REDIS_SSL: bool | None = False
    REDIS_KEY_PREFIX: str = "readia:auth"

    # Debug settings
    DEBUG: bool = False

    class Config:
        env_file = ".env"

    @property
    def sign_in_statement(self) -> str:
        return f"Sign in to {self.APP_NAME}"

# Instantiate the settings
settings = Settings()
