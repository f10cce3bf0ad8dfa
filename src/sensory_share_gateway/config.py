# Файл: src/sensory_share_gateway/config.py

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

from .exceptions import ConfigurationError

# --- 1. Настройки PostgreSQL (хранилище метаданных) ---
class PostgresConfig(BaseModel):
    user: str = "postgres"
    password: str = "postgres"
    host: str = "localhost"
    port: int = 5432
    db: str = "share_gateway"

    pool_size: int = 5
    max_overflow: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True
    application_name: str = "sensory_share_gateway"

    def get_pg_dsn(self) -> str:
        """Собирает DSN для SQLAlchemy из полей этого объекта."""
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"


# --- 2. Настройки самого шлюза ---
class GatewayConfig(BaseModel):
    # Ключ шифрования секретов S3-конфигураций. Значения по умолчанию нет намеренно:
    # без него сервис не стартует.
    encryption_secret: str | None = None

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"

    default_max_upload_mb: int = 100
    short_id_length: int = 6
    slug_attempts: int = 10
    presign_cache_ttl: int = 300

    def require_encryption_secret(self) -> str:
        if not self.encryption_secret:
            raise ConfigurationError(
                "GATEWAY__ENCRYPTION_SECRET is not set; refusing to start without an explicit encryption secret."
            )
        return self.encryption_secret


# --- 3. Явная передача конфигурации ---
class GatewayClientConfig(BaseModel):
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)


# --- 4. Чтение из .env ---
class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter='__',
        extra='ignore'
    )

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)


_cached_settings: Optional[Settings] = None

def get_settings() -> Settings:
    """
    Возвращает синглтон-экземпляр настроек, создавая его при первом вызове.
    Это предотвращает ошибки валидации при импорте.
    """
    global _cached_settings
    if _cached_settings is None:
        _cached_settings = Settings()
    return _cached_settings


def reset_settings() -> None:
    """Сбрасывает кэш настроек (нужно тестам, которые меняют окружение)."""
    global _cached_settings
    _cached_settings = None
