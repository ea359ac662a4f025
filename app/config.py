"""
Application settings (environment / .env driven).
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # 데이터베이스
    DATABASE_URL: str = "sqlite:///./data/receipts.db"

    # 환경
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # 파일 저장
    DATA_DIR: str = "./data"

    # Cron trigger
    CRON_SECRET: str = ""
    CRON_LOCK_NAME: str = "process-receipts"
    CRON_LOCK_TTL_SECONDS: int = 600

    # Queue
    MAX_FILE_BYTES: int = 10 * 1024 * 1024
    MAX_FILES_PER_RUN: int = 50
    RETRY_BACKOFF_SECONDS: int = 600
    RESERVE_MAX_ATTEMPTS: int = 3
    ALLOWED_MIME_TYPES: List[str] = ["image/jpeg", "image/png", "application/pdf"]
    FETCH_TIMEOUT_SECONDS: float = 30.0

    # Ledger defaults
    DEFAULT_DEBIT_ACCOUNT: str = "雑費"
    DEFAULT_CREDIT_ACCOUNT: str = "普通預金"
    DEFAULT_INVOICE_CATEGORY: str = "区分記載"

    # LLM (Gemini)
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "gemini-3-flash-preview"
    LLM_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    LLM_TIMEOUT_SECONDS: float = 120.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
