"""Runtime configuration for the recurring task engine."""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load environment variables but prioritize local development
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Engine settings read from the environment."""
    database_url: str
    sweep_interval_seconds: float
    sweep_max_workers: int
    catch_up_limit: int
    preview_count: int
    default_timezone: str
    disable_scheduler: bool
    dapr_enabled: bool
    dapr_pubsub_name: str
    log_level: str
    environment: str


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings(
        database_url=os.environ.get("DATABASE_URL", "sqlite:///./recurring_engine.db"),
        sweep_interval_seconds=float(os.environ.get("RECURRENCE_SWEEP_INTERVAL_SECONDS", "300")),
        sweep_max_workers=max(1, int(os.environ.get("RECURRENCE_SWEEP_MAX_WORKERS", "1"))),
        catch_up_limit=max(1, int(os.environ.get("RECURRENCE_CATCH_UP_LIMIT", "31"))),
        preview_count=int(os.environ.get("RECURRENCE_PREVIEW_COUNT", "5")),
        default_timezone=os.environ.get("DEFAULT_TIMEZONE", "UTC"),
        disable_scheduler=_env_bool("DISABLE_SCHEDULER"),
        dapr_enabled=_env_bool("DAPR_ENABLED"),
        dapr_pubsub_name=os.environ.get("DAPR_PUBSUB_NAME", "task-pubsub"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        environment=os.environ.get("ENVIRONMENT", "development"),
    )
