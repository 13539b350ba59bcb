from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./access.db"
    REDIS_URL: str = "redis://localhost:6379/2"
    SECRET_KEY: str = "dev-secret-access"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_MINUTES: int = 60
    LOG_LEVEL: str = "INFO"
    RATE_LIMIT_PER_MINUTE: int = 60
    LOGIN_RATE_LIMIT_PER_MINUTE: int = 10
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # единственный ревьюер заявок; без него все операции ревью закрыты
    SUPER_ADMIN_EMAIL: str | None = None
    # пароль учётки ревьюера, заводится при старте сервиса
    SUPER_ADMIN_PASSWORD: str | None = None
    ADMIN_REQUEST_RATE_LIMIT: int = 5
    ADMIN_REQUEST_RATE_WINDOW_SECONDS: int = 60
    ADMIN_REQUEST_RATE_LIMIT_BACKEND: str = "memory"
    REASON_MAX_LENGTH: int = 500

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
