"""Runtime configuration read from environment variables."""
import os
from dataclasses import dataclass, field
from typing import List

DEFAULT_LUMA_HANDLES = [
    'ns',
    'Prospera-events',
    'zuzalucity',
    'ipecity',
    'InfinitaCity',
    '4seas',
    'build_republic',
    'logos',
    'montelibero',
    'joinvdao',
    'ozcity_patagonia',
    'crecimiento',
    'commonsmovement',
]

TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in TRUE_VALUES


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.environ.get(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(',') if item.strip()]


@dataclass
class Settings:
    """Sync configuration."""
    table_name: str = 'community-events'
    log_level: str = 'INFO'
    timeout_seconds: int = 30
    data_dir: str = 'data'
    fetch_concurrency: int = 5
    geocoder_user_agent: str = 'community-events-sync/1.0'
    geocoder_min_interval: float = 1.0
    geocoder_max_failures: int = 3
    luma_handles: List[str] = field(default_factory=lambda: list(DEFAULT_LUMA_HANDLES))
    luma_events_enabled: bool = True
    sola_events_enabled: bool = True
    min_success_rate: float = 0.5

    @classmethod
    def from_env(cls) -> 'Settings':
        """Build settings from environment variables, with defaults."""
        return cls(
            table_name=os.environ.get('TABLE_NAME', 'community-events'),
            log_level=os.environ.get('LOG_LEVEL', 'INFO'),
            timeout_seconds=int(os.environ.get('TIMEOUT_SECONDS', '30')),
            data_dir=os.environ.get('DATA_DIR', 'data'),
            fetch_concurrency=int(os.environ.get('FETCH_CONCURRENCY', '5')),
            geocoder_user_agent=os.environ.get(
                'GEOCODER_USER_AGENT', 'community-events-sync/1.0'
            ),
            geocoder_min_interval=float(os.environ.get('GEOCODER_MIN_INTERVAL', '1.0')),
            geocoder_max_failures=int(os.environ.get('GEOCODER_MAX_FAILURES', '3')),
            luma_handles=_env_list('LUMA_HANDLES', DEFAULT_LUMA_HANDLES),
            luma_events_enabled=_env_bool('LUMA_EVENTS_ENABLED', True),
            sola_events_enabled=_env_bool('SOLA_EVENTS_ENABLED', True),
            min_success_rate=float(os.environ.get('MIN_SUCCESS_RATE', '0.5')),
        )
