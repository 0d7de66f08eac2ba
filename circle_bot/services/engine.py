"""
Сборка движка: хранилище, кэш, очередь, бан-лист, приоритеты и регистрация.
"""

import logging
import time
from typing import Callable, Optional

from .bans import BanList
from .cache import StateCache
from .intake import PendingRegistrations, RegistrationIntake
from .priority import PriorityPolicy
from .queue import QueueService
from .settings import Settings
from .storage import ChannelStore

logger = logging.getLogger(__name__)


class CircleEngine:
    """Все компоненты движка одного процесса."""

    def __init__(self, settings: Settings, clock: Callable[[], float] = time.time):
        self.settings = settings
        self.store = ChannelStore(settings.queue_data_path)
        self.cache = StateCache(self.store, ttl_seconds=settings.cache_ttl_seconds, clock=clock)
        self.queue = QueueService(
            self.cache,
            players_per_session=settings.players_per_session,
            average_session_minutes=settings.average_session_minutes,
            cooldown_seconds=settings.cooldown_seconds,
            clock=clock,
        )
        self.bans = BanList(settings.bans_data_path, clock=clock)
        self.priority = PriorityPolicy(
            vip_ids=settings.vip_ids,
            supporter_ids=settings.supporter_ids,
            host_ids=settings.host_ids,
        )
        self.intake = RegistrationIntake(
            self.queue,
            check_ban=self.bans.check_ban,
            priority_for=self.priority.priority_for,
            pending=PendingRegistrations(ttl_seconds=settings.pending_ttl_seconds, clock=clock),
            clock=clock,
        )
        logger.info(
            f"⚙️ Движок собран: {settings.players_per_session} игрока за сессию, "
            f"~{settings.average_session_minutes} мин на сессию"
        )

    def is_host(self, user_id) -> bool:
        return int(user_id) in self.settings.host_ids

    def sweep(self) -> int:
        """Чистит брошенные регистрации и просроченный кэш."""
        return self.intake.sweep_expired() + self.cache.sweep_expired()


_engine: Optional[CircleEngine] = None


def get_engine() -> CircleEngine:
    """Возвращает движок процесса, создавая его при первом вызове."""
    global _engine
    if _engine is None:
        _engine = CircleEngine(Settings.from_env())
    return _engine


def set_engine(engine: Optional[CircleEngine]) -> None:
    """Подменяет движок процесса (для тестов и альтернативных настроек)."""
    global _engine
    _engine = engine
