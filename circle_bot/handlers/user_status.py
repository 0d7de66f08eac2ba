"""
Обработчики команд /status, /queue, /waitlist и /stats.
"""

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery
from aiogram.filters import Command, CommandObject

from ..services.engine import get_engine
from ..services.navigation import nav
from ..services.notify import format_entries, format_stats, format_status, format_waitlist_page
from ..services.util import channel_key_for

router = Router()


def _channel(chat) -> str:
    return channel_key_for(chat.id)


@router.message(Command("status"))
async def cmd_status(message: Message):
    """Обработчик команды /status."""
    if not message.from_user:
        return

    queue = get_engine().queue
    channel_key = _channel(message.chat)
    status = queue.get_user_status(channel_key, message.from_user.id)

    wait_estimate = None
    if status['list_kind'] in ('queue', 'waitlist'):
        wait_estimate = queue.estimate_wait(channel_key, status['position'], status['list_kind'])

    await message.reply(format_status(status, wait_estimate))


@router.message(Command("queue"))
async def cmd_queue(message: Message):
    """Обработчик команды /queue: активная сессия и очередь."""
    state = get_engine().queue.snapshot(_channel(message.chat))

    text = f"""🎮 <b>Активная сессия</b>
{format_entries(state['activeSession'], empty_text='сессия не идет')}

📋 <b>Очередь</b>
{format_entries(state['queue']['registrations'])}"""

    await message.reply(text)


@router.message(Command("waitlist"))
async def cmd_waitlist(message: Message, command: CommandObject):
    """Обработчик команды /waitlist [страница]."""
    page = 1
    if command.args and command.args.strip().isdigit():
        page = int(command.args.strip())

    result = get_engine().queue.list_waitlist(_channel(message.chat), page)
    keyboard = nav.create_pager_keyboard("waitlist", result['page'], result['total_pages'])
    await message.reply(format_waitlist_page(result), reply_markup=keyboard)


@router.callback_query(F.data.startswith("waitlist:"))
async def callback_waitlist_page(callback: CallbackQuery):
    """Листание листа ожидания."""
    if not callback.message:
        return

    value = callback.data.split(":", 1)[1]
    if not value.isdigit():
        await callback.answer()
        return

    page = int(value)
    result = get_engine().queue.list_waitlist(_channel(callback.message.chat), page)
    keyboard = nav.create_pager_keyboard("waitlist", result['page'], result['total_pages'])
    await callback.answer()
    await callback.message.edit_text(format_waitlist_page(result), reply_markup=keyboard)


@router.message(Command("stats"))
async def cmd_stats(message: Message):
    """Обработчик команды /stats."""
    stats = get_engine().queue.get_stats(_channel(message.chat))
    await message.reply(format_stats(stats))
