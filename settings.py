from functools import lru_cache

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from errors import ConfigurationError

# Values shipped in sample env files; treat them as "not configured".
_PLACEHOLDER_PREFIXES = ("your-", "changeme", "change-me", "placeholder")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # `.env.prod` takes priority over `.env`
        env_file=(".env", ".env.prod"),
        extra="ignore",
    )

    # Required secrets: no defaults, the process refuses to start without them
    openrouter_api_key: str = Field(min_length=1)
    resend_api_key: str = Field(min_length=1)
    session_secret: str = Field(min_length=32)

    database_url: str = "sqlite:///./hirescore.db"

    # Model used for application scoring (routed through OpenRouter)
    evaluation_model: str = "google/gemini-flash-1.5"
    evaluation_timeout_seconds: float = Field(default=30.0, gt=0)

    mail_from: str = "HireScore <noreply@hirescore.app>"

    session_ttl_days: int = Field(default=7, ge=1)
    cookie_secure: bool = False

    app_base_url: str = "http://localhost:8000"  # Default for local dev

    @field_validator("openrouter_api_key", "resend_api_key", "session_secret")
    @classmethod
    def _reject_placeholders(cls, value: str) -> str:
        value = value.strip()
        if value.lower().startswith(_PLACEHOLDER_PREFIXES):
            raise ValueError("placeholder value is not a usable secret")
        return value


def _describe(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        name = ".".join(str(part) for part in error["loc"]).upper()
        problems.append(f"{name}: {error['msg']}")
    return "; ".join(problems)


@lru_cache()
def get_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid or missing configuration: {_describe(exc)}"
        ) from exc
