# sso/config.py
import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file


class ConfigError(RuntimeError):
    """Raised at startup when required configuration is missing."""


# (env var, field) pairs that must be present before the server starts
REQUIRED_ENV = (
    ("DATABASE_URL", "database_url"),
    ("JWT_SECRET", "jwt_secret"),
    ("SUPABASE_URL", "storage_url"),
    ("SUPABASE_SERVICE_KEY", "storage_service_key"),
)

# Origins always allowed for local frontends; FRONTEND_URL is appended
DEV_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:3001",
    "http://localhost:5173",
]


class Settings(BaseModel):
    # General app settings
    APP_NAME: str = "MateGroup SSO API"
    env: str = "dev"

    # Host & Port settings
    host: str = "0.0.0.0"
    port: int = 5000

    # Persistence and token signing
    database_url: str
    jwt_secret: str
    token_ttl_hours: int = 24

    # Blob store (Supabase Storage REST API)
    storage_url: str
    storage_service_key: str
    storage_bucket: str = "mategroup_profiles"

    # Frontend & redirects
    frontend_url: str = "http://localhost:3000"
    allowed_redirects: list[str] = ["https://mategroup.id"]

    # Cloudflare Turnstile (optional; only checked when a token is sent)
    turnstile_secret_key: str | None = None
    turnstile_verify_url: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify"

    # Fixed-window rate limit applied to every route
    rate_limit_max: int = 100
    rate_limit_window_seconds: int = 15 * 60

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def cors_origins(self) -> list[str]:
        origins = list(DEV_ORIGINS)
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins


def _split_list(raw: str | None) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def _int(env, name: str, default: int) -> int:
    raw = env.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def load_settings(environ=None) -> Settings:
    """
    Build the process-wide Settings from the environment.

    Called once by the application factory; everything else receives the
    resulting object through ``app.state.settings``.

    Raises:
        ConfigError: listing every required variable that is unset or empty,
            or naming a numeric variable that does not parse
    """
    env = os.environ if environ is None else environ

    missing = [name for name, _ in REQUIRED_ENV if not env.get(name)]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    values = {field: env[name] for name, field in REQUIRED_ENV}
    values["env"] = env.get("ENV", "dev")
    values["host"] = env.get("HOST", "0.0.0.0")
    values["port"] = _int(env, "PORT", 5000)
    values["storage_bucket"] = env.get("STORAGE_BUCKET", "mategroup_profiles")
    values["frontend_url"] = env.get("FRONTEND_URL", "http://localhost:3000")
    values["turnstile_secret_key"] = env.get("TURNSTILE_SECRET_KEY") or None
    values["rate_limit_max"] = _int(env, "RATE_LIMIT_MAX", 100)
    values["rate_limit_window_seconds"] = _int(env, "RATE_LIMIT_WINDOW_SECONDS", 900)

    redirects = _split_list(env.get("ALLOWED_REDIRECTS"))
    if redirects:
        values["allowed_redirects"] = redirects

    return Settings(**values)
