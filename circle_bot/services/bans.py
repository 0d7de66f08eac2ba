"""
Бан-лист Union Circle: JSON-файл {user_id: {reason, bannedAt, expires}}.
"""

import json
import logging
import re
import time
from threading import Lock
from typing import Callable, Dict, Optional

from ..types import BanRecord, BanResult
from .util import atomic_write, ensure_file_exists, now_ms

logger = logging.getLogger(__name__)

DEFAULT_BAN_REASON = 'Причина не указана'

_UNIT_SECONDS = {'d': 86400, 'h': 3600, 'm': 60, 's': 1}


def parse_duration(value: str) -> Optional[int]:
    """
    Парсит длительность бана в секунды.

    "7d", "12h", "30m", "45s" или просто число секунд.
    "permanent" - None (бессрочно).

    Raises:
        ValueError: строка не похожа на длительность
    """
    text = (value or '').strip().lower()
    if text == 'permanent':
        return None

    match = re.fullmatch(r'(\d+)([dhms])', text)
    if match:
        return int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if text.isdigit():
        return int(text)

    raise ValueError(f"Неверная длительность: {value!r}")


class BanList:
    """Файловый бан-лист. check_ban ничего не пишет."""

    def __init__(self, file_path: str = 'Bans/database.json', clock: Callable[[], float] = time.time):
        self.file_path = file_path
        self._clock = clock
        self._lock = Lock()
        ensure_file_exists(self.file_path, {})

    def load(self) -> Dict[str, BanRecord]:
        """Загружает базу банов; поврежденный файл считается пустым."""
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"❌ Не удалось загрузить базу банов: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, bans: Dict[str, BanRecord]) -> None:
        with self._lock:
            atomic_write(self.file_path, bans)

    def _is_active(self, record: BanRecord) -> bool:
        expires = record.get('expires')
        return expires is None or expires > now_ms(self._clock)

    def check_ban(self, user_id) -> BanResult:
        """Проверяет бан. Истекший бан считается снятым."""
        record = self.load().get(str(user_id))
        if not record or not self._is_active(record):
            return {'banned': False, 'reason': ''}
        return {'banned': True, 'reason': record.get('reason') or DEFAULT_BAN_REASON}

    def ban(self, user_id, reason: str, duration: Optional[int] = None) -> BanRecord:
        """Банит пользователя на duration секунд (None - бессрочно)."""
        now = now_ms(self._clock)
        record: BanRecord = {
            'reason': reason or DEFAULT_BAN_REASON,
            'bannedAt': now,
            'expires': None if duration is None else now + duration * 1000,
        }
        bans = self.load()
        bans[str(user_id)] = record
        self.save(bans)
        logger.info(f"🚫 Пользователь {user_id} забанен: {record['reason']}")
        return record

    def unban(self, user_id) -> bool:
        """Снимает бан. False, если бана не было."""
        bans = self.load()
        if bans.pop(str(user_id), None) is None:
            return False
        self.save(bans)
        logger.info(f"✅ Бан пользователя {user_id} снят")
        return True

    def purge_expired(self) -> int:
        """Удаляет истекшие баны из файла. Возвращает, сколько удалено."""
        bans = self.load()
        expired = [uid for uid, record in bans.items() if not self._is_active(record)]
        if not expired:
            return 0
        for uid in expired:
            del bans[uid]
        self.save(bans)
        logger.info(f"🧹 Удалено истекших банов: {len(expired)}")
        return len(expired)
