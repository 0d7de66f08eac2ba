"""
Логика очереди Union Circle: лист ожидания -> очередь -> активная сессия.

Каждая мутация читает состояние через StateCache и сразу сохраняет его,
поэтому между операциями нет несохраненных изменений.
"""

import logging
import math
import time
from typing import Callable, List, Optional, Sequence, Tuple

from ..types import (
    ChannelState, ChannelStats, ListKind, OperationResult, Registration,
    UserStatus, WaitlistPage,
)
from . import errors
from .cache import StateCache
from .errors import AlreadyRegisteredError, StoreUnavailableError
from .util import now_ms

logger = logging.getLogger(__name__)

# (верхняя граница в минутах, подпись); всё, что выше последней, - WAIT_OVERFLOW_LABEL
DEFAULT_WAIT_BUCKETS: Tuple[Tuple[float, str], ...] = (
    (5, "меньше 5 минут"),
    (15, "5–15 минут"),
    (30, "15–30 минут"),
    (60, "30–60 минут"),
)
WAIT_OVERFLOW_LABEL = "больше часа"

OPPOSITE_COMMANDS = {'online': 'offline', 'offline': 'online'}


def format_wait(minutes: float, buckets: Sequence[Tuple[float, str]] = DEFAULT_WAIT_BUCKETS) -> str:
    """Переводит минуты в диапазон для показа пользователю."""
    for upper, label in buckets:
        if minutes <= upper:
            return label
    return WAIT_OVERFLOW_LABEL


def _require_positive(count: int) -> int:
    if count < 1:
        raise ValueError(f"count должен быть >= 1, получено {count}")
    return count


class QueueService:
    """Оркестратор очереди для всех каналов процесса."""

    def __init__(
        self,
        cache: StateCache,
        players_per_session: int = 3,
        average_session_minutes: float = 5,
        cooldown_seconds: int = 600,
        wait_buckets: Sequence[Tuple[float, str]] = DEFAULT_WAIT_BUCKETS,
        clock: Callable[[], float] = time.time
    ):
        self.cache = cache
        self.players_per_session = _require_positive(players_per_session)
        self.average_session_minutes = average_session_minutes
        self.cooldown_seconds = cooldown_seconds
        self.wait_buckets = tuple(wait_buckets)
        self._clock = clock

    def _now(self) -> int:
        return now_ms(self._clock)

    def _save(self, channel_key: str, state: ChannelState) -> None:
        self.cache.put(channel_key, state)

    @staticmethod
    def _locate(state: ChannelState, user_id: str) -> Tuple[Optional[ListKind], int, Optional[Registration]]:
        """Один проход по трем спискам: (список, индекс, заявка)."""
        lists: Tuple[Tuple[ListKind, List[Registration]], ...] = (
            ('active', state['activeSession']),
            ('queue', state['queue']['registrations']),
            ('waitlist', state['waitingList']),
        )
        for kind, entries in lists:
            for index, entry in enumerate(entries):
                if str(entry.get('userId')) == user_id:
                    return kind, index, entry
        return None, -1, None

    @staticmethod
    def _members(state: ChannelState) -> set:
        entries = state['activeSession'] + state['queue']['registrations'] + state['waitingList']
        return {str(entry.get('userId')) for entry in entries}

    def snapshot(self, channel_key: str) -> ChannelState:
        """Копия состояния канала для отображения."""
        return self.cache.get(channel_key)

    def insert_to_waitlist(self, channel_key: str, registration: Registration, priority: int = 0) -> int:
        """
        Вставляет заявку в лист ожидания по приоритету.

        Заявка встает перед первой записью со строго меньшим приоритетом,
        внутри одного приоритета сохраняется порядок вставки.

        Returns:
            Позиция в листе ожидания (1-based)

        Raises:
            AlreadyRegisteredError: пользователь уже в одном из списков
        """
        if priority < 0:
            raise ValueError(f"priority должен быть >= 0, получено {priority}")

        user_id = str(registration['userId'])
        state = self.cache.get(channel_key)

        kind, _, _ = self._locate(state, user_id)
        if kind is not None:
            raise AlreadyRegisteredError(channel_key, user_id)

        entry: Registration = dict(registration)  # type: ignore[assignment]
        entry['userId'] = user_id
        entry['priority'] = priority
        entry.setdefault('registeredAt', self._now())

        waiting = state['waitingList']
        insert_index = len(waiting)
        for i, current in enumerate(waiting):
            if priority > int(current.get('priority') or 0):
                insert_index = i
                break

        waiting.insert(insert_index, entry)
        state['registeredUsers'][user_id] = True
        self._save(channel_key, state)

        position = insert_index + 1
        logger.info(
            f"📝 {user_id} добавлен в лист ожидания {channel_key}: позиция {position}, приоритет {priority}",
            extra={'channel_key': channel_key, 'user_id': user_id}
        )
        return position

    def remove_from_waitlist(self, channel_key: str, user_id: str) -> bool:
        """Убирает пользователя только из листа ожидания. True, если что-то изменилось."""
        user_id = str(user_id)
        state = self.cache.get(channel_key)

        before = len(state['waitingList'])
        state['waitingList'] = [e for e in state['waitingList'] if str(e.get('userId')) != user_id]
        removed = len(state['waitingList']) != before

        # флаг снимаем, только если пользователя не осталось ни в одном списке
        kind, _, _ = self._locate(state, user_id)
        flag_dropped = False
        if kind is None and state['registeredUsers'].pop(user_id, None) is not None:
            flag_dropped = True

        if not removed and not flag_dropped:
            return False

        self._save(channel_key, state)
        logger.info(f"🗑 {user_id} убран из листа ожидания {channel_key}", extra={'channel_key': channel_key})
        return True

    def list_waitlist(self, channel_key: str, page: int = 1, per_page: int = 10) -> WaitlistPage:
        """Страница листа ожидания; номер страницы приводится к допустимому диапазону."""
        _require_positive(per_page)
        waiting = self.cache.get(channel_key)['waitingList']
        total = len(waiting)
        total_pages = max(1, math.ceil(total / per_page))
        page = min(max(1, page), total_pages)
        offset = (page - 1) * per_page
        return {
            'entries': waiting[offset:offset + per_page],
            'page': page,
            'total_pages': total_pages,
            'total': total,
            'offset': offset,
        }

    def move_to_queue(self, channel_key: str, count: Optional[int] = None) -> List[Registration]:
        """Переносит первые count заявок из листа ожидания в конец очереди."""
        count = _require_positive(self.players_per_session if count is None else count)
        state = self.cache.get(channel_key)

        moved = state['waitingList'][:count]
        if not moved:
            return []

        state['waitingList'] = state['waitingList'][len(moved):]
        state['queue']['registrations'].extend(moved)
        self._save(channel_key, state)

        logger.info(
            f"➡️ В очередь {channel_key} перенесено {len(moved)} участников",
            extra={'channel_key': channel_key}
        )
        return moved

    def start_session(self, channel_key: str, count: Optional[int] = None) -> OperationResult:
        """Запускает сессию из начала очереди (не больше players_per_session)."""
        count = _require_positive(self.players_per_session if count is None else count)
        state = self.cache.get(channel_key)

        if state['activeSession']:
            return {'success': False, 'error': errors.SESSION_ALREADY_ACTIVE}

        registrations = state['queue']['registrations']
        if not registrations:
            return {'success': False, 'error': errors.EMPTY_QUEUE}

        take = min(count, self.players_per_session)
        session = registrations[:take]
        state['queue']['registrations'] = registrations[len(session):]
        state['activeSession'] = session
        state['sessionStartTime'] = self._now()
        self._save(channel_key, state)

        logger.info(
            f"▶️ Сессия в {channel_key} запущена: {len(session)} участников",
            extra={'channel_key': channel_key}
        )
        return {'success': True, 'session': session}

    def end_session(self, channel_key: str) -> OperationResult:
        """
        Завершает активную сессию.

        Замену из очереди не подтягивает: для этого есть advance.
        Участники сессии перестают быть зарегистрированными.
        """
        state = self.cache.get(channel_key)
        session = state['activeSession']
        if not session:
            return {'success': False, 'error': errors.NO_ACTIVE_SESSION}

        self._clear_session(state)
        self._save(channel_key, state)

        logger.info(
            f"⏹ Сессия в {channel_key} завершена: {len(session)} участников",
            extra={'channel_key': channel_key}
        )
        return {'success': True, 'session': session}

    def extend_session(self, channel_key: str, count: int = 1) -> OperationResult:
        """Добавляет в активную сессию до count участников из очереди, сверх лимита сессии."""
        count = _require_positive(count)
        state = self.cache.get(channel_key)

        if not state['activeSession']:
            return {'success': False, 'error': errors.NO_ACTIVE_SESSION}

        registrations = state['queue']['registrations']
        if not registrations:
            return {'success': False, 'error': errors.EMPTY_QUEUE}

        added = registrations[:count]
        state['queue']['registrations'] = registrations[len(added):]
        state['activeSession'] = state['activeSession'] + added
        self._save(channel_key, state)

        logger.info(
            f"➕ Сессия в {channel_key} расширена на {len(added)} участников",
            extra={'channel_key': channel_key}
        )
        return {'success': True, 'added': added}

    def advance(self, channel_key: str, count: Optional[int] = None) -> OperationResult:
        """
        Следующий раунд: закрывает текущую сессию и переносит до count
        участников из листа ожидания в очередь.
        """
        count = _require_positive(self.players_per_session if count is None else count)
        state = self.cache.get(channel_key)

        ended = state['activeSession']
        moved = state['waitingList'][:count]
        if not ended and not moved:
            return {'success': False, 'error': errors.EMPTY_WAITLIST}

        self._clear_session(state)
        state['waitingList'] = state['waitingList'][len(moved):]
        state['queue']['registrations'].extend(moved)
        self._save(channel_key, state)

        logger.info(
            f"⏭ {channel_key}: завершено {len(ended)}, в очередь перенесено {len(moved)}",
            extra={'channel_key': channel_key}
        )
        return {'success': True, 'ended': ended, 'moved': moved}

    @staticmethod
    def _clear_session(state: ChannelState) -> None:
        for entry in state['activeSession']:
            state['registeredUsers'].pop(str(entry.get('userId')), None)
        state['activeSession'] = []
        state['sessionStartTime'] = None

    def reset_user(self, channel_key: str, user_id: str) -> bool:
        """
        Убирает пользователя из всех списков. False, если он не был зарегистрирован.

        Флаг без записи в списках не считается регистрацией: он снимается, но результат False.
        """
        user_id = str(user_id)
        state = self.cache.get(channel_key)

        kind, _, _ = self._locate(state, user_id)
        flagged = state['registeredUsers'].pop(user_id, None) is not None
        if kind is None:
            if flagged:
                logger.warning(
                    f"⚠️ {errors.INCONSISTENT_MEMBERSHIP}: у {user_id} в {channel_key} снят флаг без записи в списках",
                    extra={'channel_key': channel_key, 'user_id': user_id}
                )
                self._save(channel_key, state)
            return False

        def keep(entry: Registration) -> bool:
            return str(entry.get('userId')) != user_id

        state['waitingList'] = [e for e in state['waitingList'] if keep(e)]
        state['queue']['registrations'] = [e for e in state['queue']['registrations'] if keep(e)]
        state['activeSession'] = [e for e in state['activeSession'] if keep(e)]
        if not state['activeSession']:
            state['sessionStartTime'] = None
        self._save(channel_key, state)

        logger.info(f"♻️ Регистрация {user_id} в {channel_key} сброшена", extra={'channel_key': channel_key})
        return True

    def reset_registrations(self, channel_key: str) -> int:
        """
        Пересобирает registeredUsers по фактическому членству в списках.

        Участники из списков не удаляются. Возвращает число снятых устаревших флагов.
        """
        state = self.cache.get(channel_key)
        members = self._members(state)
        stale = [uid for uid in state['registeredUsers'] if uid not in members]
        rebuilt = {uid: True for uid in sorted(members)}

        if rebuilt == state['registeredUsers']:
            return 0

        state['registeredUsers'] = rebuilt
        self._save(channel_key, state)
        logger.info(
            f"♻️ Флаги регистрации {channel_key} пересобраны, снято устаревших: {len(stale)}",
            extra={'channel_key': channel_key}
        )
        return len(stale)

    def get_user_status(self, channel_key: str, user_id: str) -> UserStatus:
        """
        Где находится пользователь и на какой позиции.

        Расхождение между registeredUsers и списками исправляется на месте:
        источником истины считаются списки.
        """
        user_id = str(user_id)
        state = self.cache.get(channel_key)
        kind, index, registration = self._locate(state, user_id)
        flagged = bool(state['registeredUsers'].get(user_id))

        if kind is None and flagged:
            logger.warning(
                f"⚠️ {errors.INCONSISTENT_MEMBERSHIP}: {user_id} отмечен в {channel_key}, но не найден в списках",
                extra={'channel_key': channel_key, 'user_id': user_id}
            )
            del state['registeredUsers'][user_id]
            self._repair(channel_key, state)
        elif kind is not None and not flagged:
            state['registeredUsers'][user_id] = True
            self._repair(channel_key, state)

        return {
            'is_registered': kind is not None,
            'in_waiting_list': kind == 'waitlist',
            'in_queue': kind == 'queue',
            'in_active_session': kind == 'active',
            'list_kind': kind,
            'position': index + 1 if kind is not None else None,
            'registration': registration,
        }

    def _repair(self, channel_key: str, state: ChannelState) -> None:
        try:
            self._save(channel_key, state)
        except StoreUnavailableError as e:
            logger.error(f"❌ Исправление флагов не сохранено: {e}", extra={'channel_key': channel_key})

    def cooldown_remaining(self, channel_key: str, scope: str, command: str) -> int:
        """Сколько секунд ждать, прежде чем выполнить команду, противоположную последней."""
        last = self.cache.get(channel_key)['lastCommands'].get(str(scope))
        return self._cooldown_remaining(last, command)

    def _cooldown_remaining(self, last, command: str) -> int:
        if not last or last.get('command') != OPPOSITE_COMMANDS[command]:
            return 0
        remaining_ms = int(last.get('timestamp') or 0) + self.cooldown_seconds * 1000 - self._now()
        return max(0, math.ceil(remaining_ms / 1000))

    def open_channel(self, channel_key: str, scope: str) -> OperationResult:
        """Открывает канал: все списки и регистрации сбрасываются."""
        return self._switch_channel(channel_key, str(scope), 'online')

    def close_channel(self, channel_key: str, scope: str) -> OperationResult:
        """Закрывает канал: все списки и регистрации сбрасываются."""
        return self._switch_channel(channel_key, str(scope), 'offline')

    def _switch_channel(self, channel_key: str, scope: str, command: str) -> OperationResult:
        state = self.cache.get(channel_key)

        retry_after = self._cooldown_remaining(state['lastCommands'].get(scope), command)
        if retry_after > 0:
            return {'success': False, 'error': errors.COOLDOWN_ACTIVE, 'retry_after': retry_after}

        state['waitingList'] = []
        state['queue']['registrations'] = []
        state['activeSession'] = []
        state['sessionStartTime'] = None
        state['registeredUsers'] = {}
        state['lastCommands'][scope] = {'command': command, 'timestamp': self._now()}
        if command == 'online':
            state.pop('offlineEmbedMessageId', None)
        self._save(channel_key, state)

        logger.info(f"🔁 Канал {channel_key}: {command}, данные сброшены", extra={'channel_key': channel_key})
        return {'success': True}

    def estimate_wait_minutes(self, channel_key: str, position: int, list_kind: str = 'waitlist') -> float:
        """Оценка ожидания в минутах. Эвристика, а не гарантия."""
        _require_positive(position)
        state = self.cache.get(channel_key)
        per_session = self.players_per_session
        average = self.average_session_minutes
        active = bool(state['activeSession'])

        if list_kind == 'queue':
            minutes = (math.ceil(position / per_session) - 1) * average
            if active:
                started = state.get('sessionStartTime')
                if started is None:
                    minutes += average
                else:
                    elapsed = (self._now() - started) / 60000
                    minutes += max(0.0, average - elapsed)
            return minutes

        if list_kind == 'waitlist':
            queue_size = len(state['queue']['registrations'])
            sessions = (1 if active else 0)
            sessions += math.ceil(queue_size / per_session)
            sessions += math.ceil(position / per_session)
            return sessions * average

        raise ValueError(f"Неизвестный тип списка: {list_kind}")

    def estimate_wait(self, channel_key: str, position: int, list_kind: str = 'waitlist') -> str:
        """Оценка ожидания в виде диапазона."""
        return format_wait(self.estimate_wait_minutes(channel_key, position, list_kind), self.wait_buckets)

    def get_stats(self, channel_key: str) -> ChannelStats:
        """Статистика канала без изменений состояния."""
        state = self.cache.get(channel_key)
        return {
            'queue_size': len(state['queue']['registrations']),
            'waitlist_size': len(state['waitingList']),
            'active_session_size': len(state['activeSession']),
            'total_registered': len(state['registeredUsers']),
            'has_active_session': bool(state['activeSession']),
            'session_start_time': state.get('sessionStartTime'),
        }

    def clear_cache(self, channel_key: str) -> None:
        self.cache.invalidate(channel_key)

    def clear_all_cache(self) -> None:
        self.cache.invalidate_all()
