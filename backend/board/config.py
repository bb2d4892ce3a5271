import logging
import logging.handlers
from pathlib import Path

from pydantic_settings import BaseSettings


DEFAULT_SECRET_KEY = "change-me"


class Settings(BaseSettings):
    database_url: str = "postgresql://board:board@db:5432/board"
    # Signs the session cookie holding provider tokens; startup refuses the default
    secret_key: str = DEFAULT_SECRET_KEY
    redis_url: str = ""

    # Supabase Auth
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # Public base URL used in email links; falls back to the request origin
    site_url: str = ""

    # Staged sign-up / profile drafts
    draft_ttl_seconds: int = 600

    # Session cookie
    session_max_age: int = 86400 * 7
    session_https_only: bool = False

    # HTTP hardening
    rate_limit_auth: str = "10/minute"
    cors_origins: str = ""
    cors_allow_credentials: bool = True
    trusted_hosts: str = "*"
    run_migrations: bool = True

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_max_bytes: int = 10_485_760  # 10 MB
    log_backup_count: int = 5

    model_config = {"env_file": ".env"}

    @property
    def effective_database_url(self) -> str:
        # Heroku-style URLs are not accepted by SQLAlchemy 2.x
        if self.database_url.startswith("postgres://"):
            return self.database_url.replace("postgres://", "postgresql://", 1)
        return self.database_url

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def trusted_hosts_list(self) -> list[str]:
        hosts = [h.strip() for h in self.trusted_hosts.split(",") if h.strip()]
        return hosts or ["*"]


settings = Settings()


def setup_logging() -> None:
    """Send board logs to stdout plus rotating app.log and error.log under ``log_dir``."""
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    # Request-level chatter stays at INFO on the console
    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    ))
    root.addHandler(console)

    detail_fmt = logging.Formatter(
        "%(asctime)s %(levelname)-8s [%(name)s:%(funcName)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    app_handler = logging.handlers.RotatingFileHandler(
        log_dir / "app.log",
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    app_handler.setLevel(logging.DEBUG)
    app_handler.setFormatter(detail_fmt)
    root.addHandler(app_handler)

    err_handler = logging.handlers.RotatingFileHandler(
        log_dir / "error.log",
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    err_handler.setLevel(logging.ERROR)
    err_handler.setFormatter(detail_fmt)
    root.addHandler(err_handler)

    # SDK and driver debug output would otherwise drown out board events
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("supabase").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Board logging: level=%s dir=%s backups=%d",
        settings.log_level, log_dir, settings.log_backup_count,
    )
