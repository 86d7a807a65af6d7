from pydantic_settings import BaseSettings, SettingsConfigDict


class ENV(BaseSettings):
    model_config = SettingsConfigDict(validate_default=True, env_file=".env", env_file_encoding="utf-8", extra="ignore")

    admin_api_token: str

    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    POSTGRES_HOST: str
    POSTGRES_PORT: str = "5432"
    POSTGRES_NAME: str
    POSTGRES_USER: str
    POSTGRES_PASS: str

    EMAIL_SERVICE_URL: str | None = None
    EMAIL_SERVICE_TOKEN: str | None = None
    EMAIL_FROM: str = "no-reply@elevatio.app"
    EMAIL_TIMEOUT_SECONDS: float = 10.0

    # False switches the payout ledger to the two-phase write with compensation
    LEDGER_USE_TRANSACTIONS: bool = True


class Settings():
    def __init__(self):
        self.env = ENV()

    def generate_postgres_url(self) -> str:
        return f"postgresql+asyncpg://{self.env.POSTGRES_USER}:{self.env.POSTGRES_PASS}@{self.env.POSTGRES_HOST}:{self.env.POSTGRES_PORT}/{self.env.POSTGRES_NAME}"
