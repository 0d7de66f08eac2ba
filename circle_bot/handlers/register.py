"""
Обработчики команды /register и пошаговой регистрации.
"""

import logging
import re
from aiogram import Router, F
from aiogram.types import Message, CallbackQuery
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup

from ..services import errors
from ..services.engine import get_engine
from ..services.navigation import nav
from ..services.notify import format_ban_reason, format_registration, format_status
from ..services.util import channel_key_for

logger = logging.getLogger(__name__)

router = Router()


class RegistrationStates(StatesGroup):
    waiting_fields = State()
    waiting_mega_choice = State()
    waiting_mega_detail = State()
    waiting_shiny_choice = State()


# Константы для текстов
FIELDS_PROMPT_TEXT = """📝 Регистрация в Union Circle.

Отправь одним сообщением через запятую или с новой строки:
<b>ник в игре, покемон, уровень, предмет</b>

Уровень и предмет можно не указывать.
Например: <code>AshK, Charizard, 50, Charcoal</code>

/cancel - отменить регистрацию"""

MISSING_FIELDS_TEXT = "Нужно указать хотя бы ник в игре и покемона. Попробуй ещё раз."
MEGA_PROMPT_TEXT = "Твой покемон мега-эволюционирует?"
MEGA_DETAIL_PROMPT_TEXT = "Какая мега-эволюция? (например: X, Y или название мега-камня)"
SHINY_PROMPT_TEXT = "Покемон шайни?"
EXPIRED_TEXT = "⌛ Регистрация устарела. Начни заново: /register"
CANCELLED_TEXT = "Регистрация отменена."
NOTHING_TO_CANCEL_TEXT = "Сейчас нет начатой регистрации."
NOT_YOUR_CHOICE_TEXT = "Это не твоя регистрация. Начни свою: /register"

SUCCESS_TEXT = """✅ Ты в листе ожидания, позиция {position}.
⏳ Примерное ожидание: {wait}

{registration}"""

FIELD_SEPARATOR = re.compile(r'[,\n]')


def parse_fields(text: str) -> list:
    """Разбивает ответ на поля: ник, покемон, уровень, предмет."""
    parts = [part.strip() for part in FIELD_SEPARATOR.split(text or '')]
    parts += [''] * (4 - len(parts))
    return parts[:4]


def _channel(chat) -> str:
    return channel_key_for(chat.id)


async def _reset_if_lost(result, state: FSMContext, message: Message) -> bool:
    """Сбрасывает FSM, если незавершенная регистрация истекла или шаг не тот."""
    if result['ok'] or result['error'] not in (errors.NO_PENDING_REGISTRATION, errors.UNEXPECTED_STEP):
        return False
    await state.clear()
    await message.answer(EXPIRED_TEXT)
    return True


@router.message(Command("register"))
async def cmd_register(message: Message, state: FSMContext):
    """Обработчик команды /register."""
    if not message.from_user:
        return

    engine = get_engine()
    channel_key = _channel(message.chat)
    tg_id = message.from_user.id
    logger.info(f"📝 /register от {tg_id} в {channel_key}", extra={'channel_key': channel_key})

    await state.clear()
    result = engine.intake.begin(message.chat.id, channel_key, tg_id)

    if not result['ok']:
        if result['error'] == errors.BANNED:
            await message.reply(f"🚫 Ты не можешь регистрироваться.\nПричина: {format_ban_reason(result['reason'])}")
        elif result['error'] == errors.ALREADY_REGISTERED:
            await message.reply(f"Ты уже зарегистрирован.\n\n{format_status(result['status'])}")
        return

    await state.set_state(RegistrationStates.waiting_fields)
    await message.reply(FIELDS_PROMPT_TEXT)


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    """Обработчик команды /cancel."""
    if not message.from_user:
        return

    cancelled = get_engine().intake.cancel(message.chat.id, message.from_user.id)
    await state.clear()
    await message.reply(CANCELLED_TEXT if cancelled else NOTHING_TO_CANCEL_TEXT)


@router.message(RegistrationStates.waiting_fields, F.text, ~F.text.startswith("/"))
async def process_fields(message: Message, state: FSMContext):
    """Обработчик основных полей заявки."""
    ign, pokemon, level, item = parse_fields(message.text)
    result = get_engine().intake.submit_fields(
        message.chat.id, _channel(message.chat), message.from_user.id,
        ign=ign, pokemon=pokemon, level=level, holding_item=item
    )

    if not result['ok']:
        await message.reply(MISSING_FIELDS_TEXT)
        return

    await state.set_state(RegistrationStates.waiting_mega_choice)
    await message.reply(MEGA_PROMPT_TEXT, reply_markup=nav.create_yes_no_keyboard("mega", message.from_user.id))


@router.callback_query(RegistrationStates.waiting_mega_choice, F.data.startswith("mega:"))
async def callback_mega(callback: CallbackQuery, state: FSMContext):
    """Обработчик выбора мега-эволюции."""
    if not callback.message:
        return

    is_mega, owner_id = nav.parse_choice(callback.data)
    if owner_id != callback.from_user.id:
        await callback.answer(NOT_YOUR_CHOICE_TEXT, show_alert=True)
        return

    result = get_engine().intake.choose_mega(callback.message.chat.id, callback.from_user.id, is_mega)
    await callback.answer()

    if await _reset_if_lost(result, state, callback.message):
        return

    if result['step'] == 'awaiting_mega_detail':
        await state.set_state(RegistrationStates.waiting_mega_detail)
        await callback.message.edit_text(MEGA_DETAIL_PROMPT_TEXT)
    else:
        await state.set_state(RegistrationStates.waiting_shiny_choice)
        await callback.message.edit_text(SHINY_PROMPT_TEXT, reply_markup=nav.create_yes_no_keyboard("shiny", callback.from_user.id))


@router.message(RegistrationStates.waiting_mega_detail, F.text, ~F.text.startswith("/"))
async def process_mega_detail(message: Message, state: FSMContext):
    """Обработчик описания мега-эволюции."""
    result = get_engine().intake.submit_mega_detail(message.chat.id, message.from_user.id, message.text)

    if await _reset_if_lost(result, state, message):
        return
    if not result['ok']:
        await message.reply(MEGA_DETAIL_PROMPT_TEXT)
        return

    await state.set_state(RegistrationStates.waiting_shiny_choice)
    await message.reply(SHINY_PROMPT_TEXT, reply_markup=nav.create_yes_no_keyboard("shiny", message.from_user.id))


@router.callback_query(RegistrationStates.waiting_shiny_choice, F.data.startswith("shiny:"))
async def callback_shiny(callback: CallbackQuery, state: FSMContext):
    """Последний шаг: заявка попадает в лист ожидания."""
    if not callback.message:
        return

    is_shiny, owner_id = nav.parse_choice(callback.data)
    if owner_id != callback.from_user.id:
        await callback.answer(NOT_YOUR_CHOICE_TEXT, show_alert=True)
        return

    result = get_engine().intake.choose_shiny(callback.message.chat.id, callback.from_user.id, is_shiny)
    await callback.answer()

    if await _reset_if_lost(result, state, callback.message):
        return

    await state.clear()

    if not result['ok']:
        if result['error'] == errors.BANNED:
            await callback.message.edit_text(f"🚫 Регистрация отклонена.\nПричина: {format_ban_reason(result['reason'])}")
        else:
            await callback.message.edit_text(f"Ты уже зарегистрирован.\n\n{format_status(result['status'])}")
        return

    await callback.message.edit_text(SUCCESS_TEXT.format(
        position=result['position'],
        wait=result['wait_estimate'],
        registration=format_registration(result['registration'])
    ))


@router.callback_query(F.data.startswith("mega:") | F.data.startswith("shiny:"))
async def callback_foreign_choice(callback: CallbackQuery):
    """Нажатие на кнопки чужой или уже завершенной регистрации: сообщение не трогаем."""
    _, owner_id = nav.parse_choice(callback.data)
    if owner_id != callback.from_user.id:
        await callback.answer(NOT_YOUR_CHOICE_TEXT, show_alert=True)
    else:
        await callback.answer(EXPIRED_TEXT, show_alert=True)
