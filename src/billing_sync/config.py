from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    stripe_webhook_secret: str | None = None
    stripe_webhook_tolerance: int = 300

    supabase_url: str | None = None
    supabase_service_key: str | None = None

    resend_api_key: str | None = None
    resend_api_url: str = "https://api.resend.com"
    email_from: str = "MasterClass <onboarding@resend.dev>"

    app_url: str = "http://localhost:3000"

    environment: str = "development"
    # Overrides the environment-based default when set.
    notifications_enabled: bool | None = None

    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def should_notify(self) -> bool:
        """Whether confirmation emails go out for this deployment."""
        if self.notifications_enabled is not None:
            return self.notifications_enabled
        return self.environment == "development"


settings = Settings()
