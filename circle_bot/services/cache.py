"""
Кэш состояний каналов поверх ChannelStore.

Чтение: копия из кэша, пока не истек TTL, иначе загрузка из хранилища.
Запись: сначала в хранилище, и только после успешной записи обновляется кэш.
"""

import copy
import logging
import threading
import time
from typing import Callable, Dict, Tuple

from ..types import ChannelState
from .errors import StoreUnavailableError
from .storage import ChannelStore

logger = logging.getLogger(__name__)


class StateCache:
    """Read-through/write-through кэш с фиксированным TTL на запись."""

    def __init__(
        self,
        store: ChannelStore,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # channel_key -> (снимок состояния, expires_at)
        self._items: Dict[str, Tuple[ChannelState, float]] = {}

    def get(self, channel_key: str) -> ChannelState:
        """Возвращает копию состояния канала."""
        now = self._clock()
        with self._lock:
            item = self._items.get(channel_key)
            if item is not None and item[1] > now:
                return copy.deepcopy(item[0])

        state = self.store.load(channel_key)
        with self._lock:
            self._items[channel_key] = (copy.deepcopy(state), now + self.ttl_seconds)
        return state

    def put(self, channel_key: str, state: ChannelState) -> None:
        """
        Сохраняет состояние и обновляет кэш.

        Raises:
            StoreUnavailableError: запись не удалась; запись кэша сброшена,
                следующий get перечитает хранилище.
        """
        if not self.store.save(channel_key, state):
            self.invalidate(channel_key)
            raise StoreUnavailableError(channel_key)

        with self._lock:
            self._items[channel_key] = (copy.deepcopy(state), self._clock() + self.ttl_seconds)

    def invalidate(self, channel_key: str) -> None:
        """Сбрасывает кэш канала."""
        with self._lock:
            self._items.pop(channel_key, None)

    def invalidate_all(self) -> None:
        """Сбрасывает весь кэш."""
        with self._lock:
            self._items.clear()

    def sweep_expired(self) -> int:
        """Удаляет просроченные записи. Возвращает, сколько удалено."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._items.items() if expires_at <= now]
            for k in expired:
                del self._items[k]
        if expired:
            logger.debug(f"🧹 Из кэша удалено {len(expired)} просроченных каналов")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
