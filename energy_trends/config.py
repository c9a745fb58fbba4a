"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class Settings:
    """Tunables for the cache, resolver and inspection server."""

    cache_backend: str = "file"
    cache_dir: str = os.path.join(os.path.expanduser("~"), ".energy-trends")
    db_params: Dict[str, Any] = field(default_factory=dict)
    health_api_url: Optional[str] = None
    health_api_token: Optional[str] = None
    health_api_timeout: float = 10.0
    live_query_timeout: float = 8.0
    refresh_interval_minutes: int = 15
    refresh_window_start_hour: int = 6
    average_max_age_days: int = 30
    history_weeks: int = 10
    notify_webhook_url: Optional[str] = None
    inspection_host: str = "127.0.0.1"
    inspection_port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_environment(cls) -> "Settings":
        defaults = cls()
        return cls(
            cache_backend=os.getenv("ENERGY_CACHE_BACKEND", defaults.cache_backend).lower(),
            cache_dir=os.getenv("ENERGY_CACHE_DIR", defaults.cache_dir),
            db_params={
                "host": os.getenv("DB_HOST", "localhost"),
                "port": int(os.getenv("DB_PORT", 5432)),
                "database": os.getenv("DB_NAME", "energy_trends"),
                "user": os.getenv("DB_USER", "energy_user"),
                "password": os.getenv("DB_PASSWORD", ""),
            },
            health_api_url=os.getenv("HEALTH_API_URL"),
            health_api_token=os.getenv("HEALTH_API_TOKEN"),
            health_api_timeout=float(os.getenv("HEALTH_API_TIMEOUT", defaults.health_api_timeout)),
            live_query_timeout=float(os.getenv("LIVE_QUERY_TIMEOUT", defaults.live_query_timeout)),
            refresh_interval_minutes=int(
                os.getenv("REFRESH_INTERVAL_MINUTES", defaults.refresh_interval_minutes)
            ),
            refresh_window_start_hour=int(
                os.getenv("REFRESH_WINDOW_START_HOUR", defaults.refresh_window_start_hour)
            ),
            average_max_age_days=int(os.getenv("AVERAGE_MAX_AGE_DAYS", defaults.average_max_age_days)),
            history_weeks=int(os.getenv("HISTORY_WEEKS", defaults.history_weeks)),
            notify_webhook_url=os.getenv("NOTIFY_WEBHOOK_URL"),
            inspection_host=os.getenv("INSPECTION_HOST", defaults.inspection_host),
            inspection_port=int(os.getenv("INSPECTION_PORT", defaults.inspection_port)),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        )
