"""
JSON-хранилище состояния каналов: один документ на канал с атомарной записью.
"""

import json
import logging
from pathlib import Path
from threading import Lock
from typing import List

from ..types import ChannelState, default_channel_state
from .util import atomic_write

logger = logging.getLogger(__name__)


def normalize_channel_state(raw) -> ChannelState:
    """
    Дополняет документ недостающими полями.

    Неизвестные ключи сохраняются как есть, битые поля заменяются дефолтами.
    """
    if not isinstance(raw, dict):
        return default_channel_state()

    state: ChannelState = dict(raw)  # type: ignore[assignment]
    defaults = default_channel_state()

    for key in ('lastCommands', 'lastCodeEmbeds', 'registeredUsers'):
        if not isinstance(state.get(key), dict):
            state[key] = defaults[key]  # type: ignore[literal-required]

    for key in ('waitingList', 'activeSession'):
        if not isinstance(state.get(key), list):
            state[key] = defaults[key]  # type: ignore[literal-required]

    queue = state.get('queue')
    if not isinstance(queue, dict):
        state['queue'] = {'registrations': []}
    elif not isinstance(queue.get('registrations'), list):
        queue['registrations'] = []

    if 'sessionStartTime' not in state:
        state['sessionStartTime'] = None

    return state


class ChannelStore:
    """Файловое хранилище документов каналов (queue/<channel>.json)."""

    def __init__(self, base_dir: str = 'queue'):
        self.base_dir = Path(base_dir)
        self._lock = Lock()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, channel_key: str) -> Path:
        """Путь к документу канала."""
        return self.base_dir / f"{channel_key}.json"

    def exists(self, channel_key: str) -> bool:
        """Есть ли сохраненный документ."""
        return self.path_for(channel_key).exists()

    def list_channels(self) -> List[str]:
        """Ключи всех сохраненных каналов."""
        if not self.base_dir.exists():
            return []
        return sorted(p.stem for p in self.base_dir.glob('*.json'))

    def load(self, channel_key: str) -> ChannelState:
        """
        Загружает документ канала.

        Никогда не падает: отсутствующий или поврежденный файл
        превращается в пустое состояние, ошибка пишется в лог.
        """
        path = self.path_for(channel_key)
        if not path.exists():
            return default_channel_state()

        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(
                f"❌ Не удалось прочитать состояние канала {channel_key}: {e}",
                extra={'channel_key': channel_key, 'error_type': type(e).__name__}
            )
            return default_channel_state()

        return normalize_channel_state(raw)

    def save(self, channel_key: str, state: ChannelState) -> bool:
        """Перезаписывает документ целиком. Возвращает False при ошибке записи."""
        path = self.path_for(channel_key)
        try:
            with self._lock:
                path.parent.mkdir(parents=True, exist_ok=True)
                atomic_write(str(path), state)
        except (OSError, TypeError, ValueError) as e:
            logger.error(
                f"❌ Не удалось сохранить состояние канала {channel_key}: {e}",
                extra={'channel_key': channel_key, 'error_type': type(e).__name__}
            )
            return False
        return True

