"""Application configuration from environment variables."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

def _clean_str(value: str | None) -> str | None:
    if value is None:
        return None
    # Replace non-breaking spaces with normal spaces
    return value.replace("\u00a0", " ")



class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    PROJECT_NAME: str = "Piped Peony API"
    DEBUG: bool = False
    SITE_URL: str = "https://thepipedpeony.com"
    CORS_ALLOWED_ORIGINS: str = "https://thepipedpeony.com,https://www.thepipedpeony.com,http://localhost:3000"
    ADMIN_API_KEY: str | None = None

    # Stripe
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None

    # Clerk
    CLERK_SECRET_KEY: str | None = None
    CLERK_AUTHORIZED_PARTIES: str = "https://thepipedpeony.com,https://www.thepipedpeony.com,http://localhost:3000"

    # Strapi CMS
    STRAPI_URL: str = "http://localhost:1337"
    STRAPI_API_TOKEN: str | None = None
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # Password transport between checkout and webhook
    ENCRYPTION_KEY: str | None = None
    PENDING_SIGNUP_TTL_HOURS: int = 48
    WEBHOOK_EVENT_TTL_HOURS: int = 72

    # Gated downloads
    EBOOK_PDF_URL: str = "https://content.thepipedpeony.com/uploads/Ultimate_Tip_Guide_ce3a0f7f97.pdf"
    EBOOK_FALLBACK_PATH: str = "reference/test_ebook.pdf"

    # Database Settings
    DATABASE_URL: str | None = None
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "pipedpeony"
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432

    # Notifications / Email
    ENABLE_EMAIL_NOTIFICATIONS: bool = False

    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587

    SMTP_USERNAME: str | None = Field(default=None, alias="SMTP_USERNAME")
    SMTP_PASSWORD: str | None = Field(default=None, alias="SMTP_PASSWORD")

    SMTP_USE_TLS: bool = True  # STARTTLS

    SMTP_FROM_EMAIL: str | None = Field(default=None, alias="SMTP_FROM_EMAIL")
    SMTP_FROM_NAME: str = Field(default="The Piped Peony", alias="SMTP_FROM_NAME")

    @field_validator(
        "SMTP_USERNAME",
        "SMTP_PASSWORD",
        "SMTP_FROM_EMAIL",
        "SMTP_FROM_NAME",
        mode="before",
    )
    @classmethod
    def clean_smtp_strings(cls, v):
        return _clean_str(v)



    @property
    def database_url(self) -> str:
        """Explicit DATABASE_URL wins; otherwise build one from components."""
        if self.DATABASE_URL:
            url = self.DATABASE_URL
            if url.startswith("postgres://"):
                return url.replace("postgres://", "postgresql+psycopg://", 1)
            if url.startswith("postgresql://"):
                return url.replace("postgresql://", "postgresql+psycopg://", 1)
            return url
        return (
            f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def authorized_parties(self) -> list[str]:
        return [p.strip() for p in self.CLERK_AUTHORIZED_PARTIES.split(",") if p.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


settings = Settings()
