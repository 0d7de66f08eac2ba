"""
Форматирование сообщений бота: заявки, статус, списки и статистика канала.
"""

from datetime import datetime
from html import escape
from typing import List, Optional

from ..types import ChannelStats, Registration, UserStatus, WaitlistPage

LIST_TITLES = {
    'active': 'активной сессии',
    'queue': 'очереди',
    'waitlist': 'листе ожидания',
}


def format_registration(entry: Registration, number: Optional[int] = None) -> str:
    """
    Одна строка о заявке.

    Args:
        entry: Заявка участника
        number: Порядковый номер в списке (если нужен)

    Returns:
        Строка вида «1. Ash - Charizard ур. 50 (Mega X) ✨»
    """
    parts = [f"<b>{escape(entry.get('ign', ''))}</b> - {escape(entry.get('pokemon', ''))}"]
    if entry.get('pokemonLevel'):
        parts.append(f"ур. {escape(entry['pokemonLevel'])}")
    if entry.get('mega') == 'Yes':
        detail = entry.get('megaDetails')
        parts.append(f"(Mega {escape(detail)})" if detail else "(Mega)")
    if entry.get('shiny') == 'Yes':
        parts.append("✨")
    if entry.get('holdingItem'):
        parts.append(f"🎒 {escape(entry['holdingItem'])}")

    line = ' '.join(parts)
    return f"{number}. {line}" if number is not None else line


def format_ban_reason(reason: Optional[str]) -> str:
    """Причина бана для HTML-сообщения."""
    return escape(reason) if reason else "не указана"


def format_entries(entries: List[Registration], start: int = 1, empty_text: str = "пусто") -> str:
    if not entries:
        return f"<i>{empty_text}</i>"
    return '\n'.join(format_registration(entry, start + i) for i, entry in enumerate(entries))


def format_status(status: UserStatus, wait_estimate: Optional[str] = None) -> str:
    """Текст для /status."""
    if not status['is_registered']:
        return "Ты не зарегистрирован в этом канале. Используй /register."

    kind = status['list_kind']
    if kind == 'active':
        text = f"🎮 Ты в активной сессии (место {status['position']})."
    else:
        text = f"📋 Ты в {LIST_TITLES[kind]}, позиция {status['position']}."
    if wait_estimate:
        text += f"\n⏳ Примерное ожидание: {wait_estimate}"
    if status['registration']:
        text += f"\n\n{format_registration(status['registration'])}"
    return text


def format_waitlist_page(page: WaitlistPage) -> str:
    """Текст страницы листа ожидания."""
    header = f"📝 <b>Лист ожидания</b> ({page['total']})"
    if page['total_pages'] > 1:
        header += f", страница {page['page']}/{page['total_pages']}"
    return f"{header}\n\n{format_entries(page['entries'], page['offset'] + 1)}"


def format_session_start(start_ms: Optional[int]) -> str:
    if start_ms is None:
        return 'неизвестно'
    return datetime.fromtimestamp(start_ms / 1000).strftime('%H:%M')


def format_stats(stats: ChannelStats) -> str:
    """Текст для /stats."""
    session = "нет"
    if stats['has_active_session']:
        session = f"идет с {format_session_start(stats['session_start_time'])}, игроков: {stats['active_session_size']}"

    return f"""📊 <b>Статистика канала</b>

🎮 Активная сессия: {session}
📋 В очереди: {stats['queue_size']}
📝 В листе ожидания: {stats['waitlist_size']}
👥 Всего зарегистрировано: {stats['total_registered']}"""
