"""
Проверка прав доступа (ACL) для команд ведущего.
"""

from functools import wraps
from typing import Callable, Any
from aiogram import types

from .engine import get_engine


def is_host(tg_id: int) -> bool:
    """Проверяет, является ли пользователь ведущим (список HOSTS из env)."""
    return get_engine().is_host(tg_id)


def require_host(func: Callable) -> Callable:
    """
    Декоратор для команд ведущего.
    Если пользователь не ведущий, отправляет сообщение об отказе.
    """
    @wraps(func)
    async def wrapper(message: types.Message, *args, **kwargs) -> Any:
        if not message.from_user or not is_host(message.from_user.id):
            await message.reply("Эта команда доступна только ведущим.")
            return
        return await func(message, *args, **kwargs)
    return wrapper
