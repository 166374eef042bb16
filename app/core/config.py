import json
from typing import List, Union
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Bahi Backend"
    env: str = "dev"

    # DATABASE
    database_url: str = "sqlite:///./bahi.db"
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # INVENTORY
    low_stock_notifier: str = "log"

    # DOCUMENT NUMBERING
    document_number_max_attempts: int = Field(default=3, ge=1, le=10)
    document_sequence_padding: int = Field(default=5, ge=1, le=10)
    default_fiscal_year_start: int = Field(default=4, ge=1, le=12)
    default_invoice_prefix: str = "INV"
    quotation_prefix: str = "QT"

    # NOTIFICATIONS
    smtp_host: str | None = None
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_sender_email: str | None = None
    smtp_reply_to_email: str | None = None
    smtp_use_starttls: bool = True
    smtp_use_ssl: bool = False

    # API
    api_timeout_hint_ms: int = Field(default=300000, ge=1000, le=1_800_000)

    # CORS
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    cors_origin_regex: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            if not v.strip():
                return []
            if v.startswith("["):
                parsed = json.loads(v)
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON value must be a list")
                return [str(i).strip() for i in parsed if str(i).strip()]
            return [i.strip() for i in v.split(",") if i.strip()]
        if isinstance(v, list):
            return [str(i).strip() for i in v if str(i).strip()]
        raise ValueError(v)

    @field_validator(
        "smtp_host",
        "smtp_username",
        "smtp_password",
        "smtp_sender_email",
        "smtp_reply_to_email",
        mode="before",
    )
    @classmethod
    def normalize_optional_strings(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @field_validator("default_invoice_prefix", "quotation_prefix")
    @classmethod
    def normalize_prefix(cls, value: str) -> str:
        cleaned = (value or "").strip().upper()
        if not cleaned:
            raise ValueError("Document prefix cannot be empty")
        return cleaned

    @field_validator("low_stock_notifier")
    @classmethod
    def normalize_notifier(cls, value: str) -> str:
        return (value or "log").strip().lower()

    @model_validator(mode="after")
    def validate_production_safety(self) -> "Settings":
        env_value = self.env.lower().strip()
        if env_value not in {"prod", "production"}:
            return self

        if self.database_url.lower().startswith("sqlite"):
            raise ValueError("DATABASE_URL must point at a networked database in production")

        if "*" in self.cors_origins:
            raise ValueError("CORS_ORIGINS cannot contain '*' in production")
        if self.cors_origin_regex:
            raise ValueError("CORS_ORIGIN_REGEX cannot be set in production")

        if self.smtp_use_ssl and self.smtp_use_starttls:
            raise ValueError("Set only one of SMTP_USE_SSL or SMTP_USE_STARTTLS in production")

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )


settings = Settings()
