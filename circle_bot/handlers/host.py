"""
Команды ведущего: управление очередью, сессиями, каналом и банами.
"""

import logging
from typing import Optional
from aiogram import Router
from aiogram.types import Message
from aiogram.filters import Command, CommandObject

from ..services import errors
from ..services.acl import require_host
from ..services.bans import parse_duration
from ..services.engine import get_engine
from ..services.notify import format_ban_reason, format_entries
from ..services.util import channel_key_for

logger = logging.getLogger(__name__)

router = Router()

# Константы для текстов
ERROR_TEXTS = {
    errors.SESSION_ALREADY_ACTIVE: "Сессия уже идет. Сначала заверши её: /endqueue",
    errors.NO_ACTIVE_SESSION: "Сейчас нет активной сессии.",
    errors.EMPTY_QUEUE: "Очередь пуста. Перенеси участников: /movequeue",
    errors.EMPTY_WAITLIST: "Лист ожидания пуст, и сессия не идет.",
}
COUNT_USAGE_TEXT = "Количество должно быть положительным числом."
BAN_USAGE_TEXT = "Использование: /ucban <id> <длительность: 7d, 12h, 30m, 45s или permanent> <причина>"


def _channel(message: Message) -> str:
    return channel_key_for(message.chat.id)


def parse_count(args: Optional[str]) -> Optional[int]:
    """Необязательное количество из аргументов команды. ValueError, если это не положительное число."""
    if not args or not args.strip():
        return None
    count = int(args.split()[0])
    if count < 1:
        raise ValueError(f"count должен быть >= 1, получено {count}")
    return count


def parse_user_id(args: Optional[str]) -> Optional[str]:
    """Первый аргумент команды как id пользователя."""
    if not args or not args.split():
        return None
    user_id = args.split()[0].lstrip('@')
    return user_id if user_id.isdigit() else None


async def _reply_error(message: Message, result) -> None:
    if result['error'] == errors.COOLDOWN_ACTIVE:
        minutes, seconds = divmod(result['retry_after'], 60)
        await message.reply(f"⏳ Подожди ещё {minutes} мин {seconds} сек перед сменой статуса канала.")
        return
    await message.reply(ERROR_TEXTS.get(result['error'], f"Ошибка: {result['error']}"))


@router.message(Command("nextqueue"))
@require_host
async def cmd_nextqueue(message: Message, command: CommandObject):
    """Обработчик команды /nextqueue [n]: завершить сессию и подтянуть следующих."""
    try:
        count = parse_count(command.args)
    except ValueError:
        await message.reply(COUNT_USAGE_TEXT)
        return

    result = get_engine().queue.advance(_channel(message), count)
    if not result['success']:
        await _reply_error(message, result)
        return

    await message.reply(f"""⏭ <b>Следующий раунд</b>

Завершили сессию: {len(result['ended'])}
Перенесены в очередь:
{format_entries(result['moved'], empty_text='никого')}""")


@router.message(Command("movequeue"))
@require_host
async def cmd_movequeue(message: Message, command: CommandObject):
    """Обработчик команды /movequeue [n]."""
    try:
        count = parse_count(command.args)
    except ValueError:
        await message.reply(COUNT_USAGE_TEXT)
        return

    moved = get_engine().queue.move_to_queue(_channel(message), count)
    if not moved:
        await message.reply(ERROR_TEXTS[errors.EMPTY_WAITLIST])
        return
    await message.reply(f"➡️ Перенесены в очередь:\n{format_entries(moved)}")


@router.message(Command("startqueue"))
@require_host
async def cmd_startqueue(message: Message, command: CommandObject):
    """Обработчик команды /startqueue [n]."""
    try:
        count = parse_count(command.args)
    except ValueError:
        await message.reply(COUNT_USAGE_TEXT)
        return

    result = get_engine().queue.start_session(_channel(message), count)
    if not result['success']:
        await _reply_error(message, result)
        return
    await message.reply(f"▶️ <b>Сессия началась</b>\n\n{format_entries(result['session'])}")


@router.message(Command("endqueue"))
@require_host
async def cmd_endqueue(message: Message):
    """Обработчик команды /endqueue."""
    result = get_engine().queue.end_session(_channel(message))
    if not result['success']:
        await _reply_error(message, result)
        return
    await message.reply(f"⏹ Сессия завершена, участников: {len(result['session'])}")


@router.message(Command("extend"))
@require_host
async def cmd_extend(message: Message, command: CommandObject):
    """Обработчик команды /extend [n]: добрать участников в идущую сессию."""
    try:
        count = parse_count(command.args) or 1
    except ValueError:
        await message.reply(COUNT_USAGE_TEXT)
        return

    result = get_engine().queue.extend_session(_channel(message), count)
    if not result['success']:
        await _reply_error(message, result)
        return
    await message.reply(f"➕ Добавлены в сессию:\n{format_entries(result['added'])}")


@router.message(Command("resetuser"))
@require_host
async def cmd_resetuser(message: Message, command: CommandObject):
    """Обработчик команды /resetuser <id>."""
    user_id = parse_user_id(command.args)
    if not user_id:
        await message.reply("Использование: /resetuser <id>")
        return

    if get_engine().queue.reset_user(_channel(message), user_id):
        await message.reply(f"♻️ Регистрация {user_id} сброшена.")
    else:
        await message.reply(f"Пользователь {user_id} не зарегистрирован.")


@router.message(Command("removewait"))
@require_host
async def cmd_removewait(message: Message, command: CommandObject):
    """Обработчик команды /removewait <id>."""
    user_id = parse_user_id(command.args)
    if not user_id:
        await message.reply("Использование: /removewait <id>")
        return

    if get_engine().queue.remove_from_waitlist(_channel(message), user_id):
        await message.reply(f"🗑 {user_id} убран из листа ожидания.")
    else:
        await message.reply(f"{user_id} нет в листе ожидания.")


@router.message(Command("resetregister"))
@require_host
async def cmd_resetregister(message: Message):
    """Обработчик команды /resetregister: пересобрать флаги регистрации."""
    stale = get_engine().queue.reset_registrations(_channel(message))
    await message.reply(f"♻️ Флаги регистрации пересобраны. Снято устаревших: {stale}")


@router.message(Command("online"))
@require_host
async def cmd_online(message: Message):
    """Обработчик команды /online: открыть канал."""
    result = get_engine().queue.open_channel(_channel(message), message.chat.id)
    if not result['success']:
        await _reply_error(message, result)
        return
    await message.reply("🟢 Канал открыт. Регистрация: /register")


@router.message(Command("offline"))
@require_host
async def cmd_offline(message: Message):
    """Обработчик команды /offline: закрыть канал."""
    result = get_engine().queue.close_channel(_channel(message), message.chat.id)
    if not result['success']:
        await _reply_error(message, result)
        return
    await message.reply("🔴 Канал закрыт. Все списки очищены.")


@router.message(Command("ucban"))
@require_host
async def cmd_ucban(message: Message, command: CommandObject):
    """Обработчик команды /ucban <id> <длительность> <причина>."""
    parts = (command.args or '').split(maxsplit=2)
    user_id = parse_user_id(command.args)
    if not user_id or len(parts) < 2:
        await message.reply(BAN_USAGE_TEXT)
        return

    try:
        duration = parse_duration(parts[1])
    except ValueError:
        await message.reply(BAN_USAGE_TEXT)
        return

    reason = parts[2] if len(parts) > 2 else ''
    record = get_engine().bans.ban(user_id, reason, duration)
    logger.info(f"🚫 Ведущий {message.from_user.id} забанил {user_id}", extra={'user_id': user_id})

    until = "бессрочно" if duration is None else f"на {parts[1]}"
    await message.reply(f"🚫 {user_id} забанен {until}.\nПричина: {format_ban_reason(record['reason'])}")


@router.message(Command("ucunban"))
@require_host
async def cmd_ucunban(message: Message, command: CommandObject):
    """Обработчик команды /ucunban <id>."""
    user_id = parse_user_id(command.args)
    if not user_id:
        await message.reply("Использование: /ucunban <id>")
        return

    if get_engine().bans.unban(user_id):
        await message.reply(f"✅ Бан {user_id} снят.")
    else:
        await message.reply(f"{user_id} не забанен.")
