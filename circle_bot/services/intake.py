"""
Пошаговая регистрация участника.

Шаги: основные поля -> мега-эволюция (-> описание меги) -> шайни -> заявка
попадает в лист ожидания. Пока регистрация не завершена, она хранится
только в памяти и никак не влияет на состояние канала.

Между шагами пользователь думает, и в это время в канале могут пройти
другие действия. Поэтому на последнем шаге бан и повторная регистрация
проверяются заново: это единственная защита от гонок, блокировок нет.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from ..types import BanResult, IntakeResult, IntakeStep, PendingRegistration, Registration
from . import errors
from .errors import AlreadyRegisteredError
from .queue import QueueService
from .util import now_ms

logger = logging.getLogger(__name__)

PendingKey = Tuple[str, str]

MAX_IGN_LENGTH = 20
MAX_POKEMON_LENGTH = 30
MAX_LEVEL_LENGTH = 3
MAX_ITEM_LENGTH = 30
MAX_MEGA_DETAILS_LENGTH = 30


def _clean(value, limit: int) -> str:
    if value is None:
        return ''
    return str(value).strip()[:limit]


class PendingRegistrations:
    """Незавершенные регистрации по ключу (channel_id, user_id) с TTL."""

    def __init__(self, ttl_seconds: float = 900, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._items: Dict[PendingKey, PendingRegistration] = {}

    def get(self, key: PendingKey) -> Optional[PendingRegistration]:
        """Возвращает регистрацию; просроченная считается брошенной и удаляется."""
        with self._lock:
            pending = self._items.get(key)
            if pending is None:
                return None
            if pending['expires_at'] <= self._clock():
                del self._items[key]
                logger.info(f"⌛ Регистрация {key} истекла")
                return None
            return pending

    def put(self, key: PendingKey, pending: PendingRegistration) -> None:
        """Сохраняет регистрацию и продлевает ей срок жизни."""
        pending['expires_at'] = self._clock() + self.ttl_seconds
        with self._lock:
            self._items[key] = pending

    def discard(self, key: PendingKey) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def sweep_expired(self) -> int:
        """Удаляет брошенные регистрации. Возвращает, сколько удалено."""
        now = self._clock()
        with self._lock:
            expired = [k for k, v in self._items.items() if v['expires_at'] <= now]
            for k in expired:
                del self._items[k]
        if expired:
            logger.info(f"🧹 Удалено брошенных регистраций: {len(expired)}")
        return len(expired)

    def __contains__(self, key: PendingKey) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class RegistrationIntake:
    """Машина состояний регистрации поверх QueueService."""

    def __init__(
        self,
        queue: QueueService,
        check_ban: Callable[[str], BanResult],
        priority_for: Callable[[str], int],
        pending: Optional[PendingRegistrations] = None,
        clock: Callable[[], float] = time.time
    ):
        self.queue = queue
        self.check_ban = check_ban
        self.priority_for = priority_for
        self.pending = pending if pending is not None else PendingRegistrations(clock=clock)
        self._clock = clock

    @staticmethod
    def _key(channel_id, user_id) -> PendingKey:
        return str(channel_id), str(user_id)

    @staticmethod
    def _fail(error: str, **extra) -> IntakeResult:
        result: IntakeResult = {'ok': False, 'error': error}
        result.update(extra)  # type: ignore[typeddict-item]
        return result

    def _expect(self, key: PendingKey, step: IntakeStep) -> Tuple[Optional[PendingRegistration], Optional[IntakeResult]]:
        pending = self.pending.get(key)
        if pending is None:
            return None, self._fail(errors.NO_PENDING_REGISTRATION, step=None)
        if pending['step'] != step:
            return None, self._fail(errors.UNEXPECTED_STEP, step=pending['step'])
        return pending, None

    def current_step(self, channel_id, user_id) -> Optional[IntakeStep]:
        """Текущий шаг регистрации или None."""
        pending = self.pending.get(self._key(channel_id, user_id))
        return pending['step'] if pending else None

    def begin(self, channel_id, channel_key: str, user_id) -> IntakeResult:
        """Начало регистрации: проверки бана и повторной регистрации."""
        key = self._key(channel_id, user_id)
        user_id = key[1]

        ban = self.check_ban(user_id)
        if ban['banned']:
            self.pending.discard(key)
            logger.warning(
                f"🚫 Забаненный пользователь {user_id} пытался зарегистрироваться в {channel_key}: {ban['reason']}",
                extra={'channel_key': channel_key, 'user_id': user_id}
            )
            return self._fail(errors.BANNED, reason=ban['reason'])

        status = self.queue.get_user_status(channel_key, user_id)
        if status['is_registered']:
            self.pending.discard(key)
            return self._fail(errors.ALREADY_REGISTERED, status=status)

        if self.pending.discard(key):
            logger.info(f"🔄 Регистрация {user_id} в {channel_key} начата заново", extra={'channel_key': channel_key})

        logger.debug(f"Регистрация {user_id} в {channel_key} начата")
        return {'ok': True, 'step': 'awaiting_fields'}

    def submit_fields(
        self,
        channel_id,
        channel_key: str,
        user_id,
        ign: str,
        pokemon: str,
        level=None,
        holding_item: Optional[str] = None
    ) -> IntakeResult:
        """Основные поля. Проверяется только наличие обязательных."""
        key = self._key(channel_id, user_id)
        ign = _clean(ign, MAX_IGN_LENGTH)
        pokemon = _clean(pokemon, MAX_POKEMON_LENGTH)
        if not ign or not pokemon:
            return self._fail(errors.MISSING_FIELDS, step='awaiting_fields')

        pending: PendingRegistration = {
            'channel_key': channel_key,
            'user_id': key[1],
            'step': 'awaiting_mega_choice',
            'ign': ign,
            'pokemon': pokemon,
            'pokemonLevel': _clean(level, MAX_LEVEL_LENGTH),
            'holdingItem': _clean(holding_item, MAX_ITEM_LENGTH),
        }
        self.pending.put(key, pending)
        return {'ok': True, 'step': 'awaiting_mega_choice'}

    def choose_mega(self, channel_id, user_id, is_mega: bool) -> IntakeResult:
        key = self._key(channel_id, user_id)
        pending, error = self._expect(key, 'awaiting_mega_choice')
        if error:
            return error

        if is_mega:
            pending['mega'] = 'Yes'
            pending['step'] = 'awaiting_mega_detail'
        else:
            pending['mega'] = 'No'
            pending['megaDetails'] = ''
            pending['step'] = 'awaiting_shiny_choice'
        self.pending.put(key, pending)
        return {'ok': True, 'step': pending['step']}

    def submit_mega_detail(self, channel_id, user_id, detail: str) -> IntakeResult:
        key = self._key(channel_id, user_id)
        pending, error = self._expect(key, 'awaiting_mega_detail')
        if error:
            return error

        detail = _clean(detail, MAX_MEGA_DETAILS_LENGTH)
        if not detail:
            return self._fail(errors.MISSING_FIELDS, step='awaiting_mega_detail')

        pending['megaDetails'] = detail
        pending['step'] = 'awaiting_shiny_choice'
        self.pending.put(key, pending)
        return {'ok': True, 'step': 'awaiting_shiny_choice'}

    def choose_shiny(self, channel_id, user_id, is_shiny: bool) -> IntakeResult:
        """
        Последний шаг: повторные проверки и вставка в лист ожидания.

        При ошибке сохранения StoreUnavailableError пробрасывается,
        а незавершенная регистрация остается, чтобы шаг можно было повторить.
        """
        key = self._key(channel_id, user_id)
        pending, error = self._expect(key, 'awaiting_shiny_choice')
        if error:
            return error

        user_id = key[1]
        channel_key = pending['channel_key']

        ban = self.check_ban(user_id)
        if ban['banned']:
            self.pending.discard(key)
            logger.warning(
                f"🚫 Регистрация {user_id} в {channel_key} отменена: пользователь забанен",
                extra={'channel_key': channel_key, 'user_id': user_id}
            )
            return self._fail(errors.BANNED, reason=ban['reason'])

        status = self.queue.get_user_status(channel_key, user_id)
        if status['is_registered']:
            self.pending.discard(key)
            return self._fail(errors.ALREADY_REGISTERED, status=status)

        priority = self.priority_for(user_id)
        registration: Registration = {
            'userId': user_id,
            'ign': pending['ign'],
            'pokemon': pending['pokemon'],
            'pokemonLevel': pending.get('pokemonLevel', ''),
            'mega': pending.get('mega', 'No'),
            'megaDetails': pending.get('megaDetails', ''),
            'shiny': 'Yes' if is_shiny else 'No',
            'holdingItem': pending.get('holdingItem', ''),
            'registeredAt': now_ms(self._clock),
            'priority': priority,
        }

        try:
            position = self.queue.insert_to_waitlist(channel_key, registration, priority)
        except AlreadyRegisteredError:
            self.pending.discard(key)
            return self._fail(errors.ALREADY_REGISTERED, status=self.queue.get_user_status(channel_key, user_id))

        self.pending.discard(key)
        wait_estimate = self.queue.estimate_wait(channel_key, position, 'waitlist')
        logger.info(
            f"✅ Регистрация {user_id} в {channel_key} завершена: позиция {position}",
            extra={'channel_key': channel_key, 'user_id': user_id}
        )
        return {
            'ok': True,
            'step': None,
            'position': position,
            'wait_estimate': wait_estimate,
            'registration': registration,
        }

    def cancel(self, channel_id, user_id) -> bool:
        """Отмена регистрации. Состояние канала не меняется."""
        key = self._key(channel_id, user_id)
        cancelled = self.pending.discard(key)
        if cancelled:
            logger.info(f"❌ Регистрация {key[1]} отменена")
        return cancelled

    def sweep_expired(self) -> int:
        return self.pending.sweep_expired()
