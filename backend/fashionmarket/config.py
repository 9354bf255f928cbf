from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./fashionmarket.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:4322"]
    SITE_URL: str = "http://localhost:4322"
    LOG_LEVEL: str = "INFO"

    # stock
    LOW_STOCK_THRESHOLD: int = 5
    STOCK_LOCK_TIMEOUT_SECONDS: int = 10

    # checkout arithmetic, all amounts in cents
    FREE_SHIPPING_THRESHOLD_CENTS: int = 10000
    STANDARD_SHIPPING_COST_CENTS: int = 499
    EXPRESS_SHIPPING_COST_CENTS: int = 999
    TAX_RATE: int = 21
    ORDER_NUMBER_MAX_ATTEMPTS: int = 10

    RETURN_WINDOW_DAYS: int = 30

    # mail; an empty SMTP_HOST keeps messages in the in-process outbox
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = "pedidos@fashionmarket.es"
    SMTP_FROM_NAME: str = "FashionMarket"
    SMTP_TIMEOUT_SECONDS: int = 10

    INVOICE_RETRY_INTERVAL_SECONDS: int = 300

    # issuer block printed on invoices and credit notes
    COMPANY_NAME: str = "FashionMarket S.L."
    COMPANY_NIF: str = "B12345678"
    COMPANY_ADDRESS: str = "Calle Gran Via 1, 28013 Madrid"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
