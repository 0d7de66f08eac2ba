"""
Настройки бота из переменных окружения (.env подхватывается через python-dotenv).

Читаются один раз при старте и дальше не меняются.
"""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

from .util import parse_int_list


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, '').strip()
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, '').strip()
    return float(value) if value else default


@dataclass(frozen=True)
class Settings:
    """Настройки движка и транспорта."""
    bot_token: str = ''
    host_ids: List[int] = field(default_factory=list)
    vip_ids: List[int] = field(default_factory=list)
    supporter_ids: List[int] = field(default_factory=list)
    players_per_session: int = 3
    average_session_minutes: float = 5
    cache_ttl_seconds: float = 300
    pending_ttl_seconds: float = 900
    cooldown_seconds: int = 600
    queue_data_path: str = 'queue'
    bans_data_path: str = 'Bans/database.json'
    logs_dir: str = 'logs'
    use_webhook: bool = False
    webhook_url: str = ''
    port: int = 3000

    @classmethod
    def from_env(cls) -> 'Settings':
        """Собирает настройки из окружения, пустые значения заменяются дефолтами."""
        load_dotenv()
        return cls(
            bot_token=os.getenv('BOT_TOKEN', ''),
            host_ids=parse_int_list(os.getenv('HOSTS', '')),
            vip_ids=parse_int_list(os.getenv('VIP_USERS', '')),
            supporter_ids=parse_int_list(os.getenv('SUPPORTER_USERS', '')),
            players_per_session=_env_int('PLAYERS_PER_SESSION', 3),
            average_session_minutes=_env_float('AVERAGE_SESSION_MINUTES', 5),
            cache_ttl_seconds=_env_float('CACHE_TTL_SECONDS', 300),
            pending_ttl_seconds=_env_float('PENDING_TTL_SECONDS', 900),
            cooldown_seconds=_env_int('COOLDOWN_SECONDS', 600),
            queue_data_path=os.getenv('QUEUE_DATA_PATH') or 'queue',
            bans_data_path=os.getenv('BANS_DATA_PATH') or 'Bans/database.json',
            logs_dir=os.getenv('LOGS_DIR') or 'logs',
            use_webhook=os.getenv('USE_WEBHOOK', 'false').lower() == 'true',
            webhook_url=os.getenv('WEBHOOK_URL', ''),
            port=_env_int('PORT', 3000),
        )
