from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "ShanBus Booking API"
    # Comma-separated origins for CORS (e.g. https://shanbus.vn,https://admin.shanbus.vn). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    SECRET_KEY: str

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v

    REDIS_URL: str = "redis://localhost:6379/0"

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "booking@shanbus.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""
    # failed sends are retried by the beat job until this many attempts
    EMAIL_MAX_ATTEMPTS: int = 5

    FRONTEND_URL: str = "http://localhost:5173"  # gateway return handler redirects here

    # VNPay (sandbox defaults)
    VNP_TMN_CODE: str = "CGKBF9L2"
    VNP_HASH_SECRET: str = ""
    VNP_URL: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    VNP_RETURN_URL: str = "http://localhost:5173/payment/vnpay/return"
    VNP_API: str = "https://sandbox.vnpayment.vn/merchant_webapi/api/transaction"
    VNP_TIMEOUT_SECONDS: int = 15
    VNP_PAYMENT_EXPIRE_MINUTES: int = 15

    # Bank transfer QR (img.vietqr.io)
    VIETQR_BANK_CODE: str = "VCB"
    VIETQR_ACCOUNT_NO: str = "0123456789"
    VIETQR_ACCOUNT_NAME: str = "SHANBUS"

    SEAT_LOCK_TTL_SECONDS: int = 600
    CANCELLATION_CUTOFF_HOURS: int = 2


settings = Settings()
