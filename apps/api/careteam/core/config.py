"""Settings for the care team API, read from the environment (and .env)."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"  # dev | test | staging | production
    VERSION: str = "0.01.00"

    # Only enable behind a proxy that overwrites X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    DATABASE_URL: str

    # Session cookie signing. JWT_SECRET_PREVIOUS keeps old cookies valid during a rotation.
    JWT_SECRET: str = "dev-only-secret-change-me"
    JWT_SECRET_PREVIOUS: str = ""
    JWT_EXPIRES_HOURS: int = 4

    CORS_ORIGINS: str = "http://localhost:3000"  # comma separated
    FRONTEND_URL: str = "http://localhost:3000"  # base for invite links

    # Care team invitations
    INVITE_EXPIRY_DAYS: int = 7
    INVITE_TOKEN_BYTES: int = 32  # token_hex length is twice this

    # Transactional email (Resend). Empty key = log emails instead of sending.
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Care Team <onboarding@resend.dev>"

    SENTRY_DSN: str = ""

    # Requests per minute per client address
    RATE_LIMIT_API: int = 60
    RATE_LIMIT_INVITE_PREVIEW: int = 20

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Secrets accepted when verifying, current one first."""
        return [s for s in (self.JWT_SECRET, self.JWT_SECRET_PREVIOUS) if s]


settings = Settings()
