"""
Middleware для обработки ошибок и логирования обработчиков.
"""

import time
from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, Message, CallbackQuery

from ..services.errors import StoreUnavailableError
from ..services.logger import get_logger, log_message, log_callback, log_error, log_timing

logger = get_logger('middleware')

STORE_UNAVAILABLE_TEXT = "💾 Изменения не сохранились. Попробуйте ещё раз через минуту."


def resolve_handler_name(handler: Callable, data: Dict[str, Any]) -> str:
    """
    Имя функции-обработчика события.

    Внутреннему middleware приходит обертка, а сам обработчик лежит в data['handler'].callback.
    """
    handler_object = data.get('handler')
    callback = getattr(handler_object, 'callback', None)
    name = getattr(callback, '__name__', None)
    if name:
        return name
    return getattr(handler, '__name__', 'unknown')


class ErrorHandlerMiddleware(BaseMiddleware):
    """Middleware для глобальной обработки ошибок с детальным логированием."""

    def __init__(self):
        super().__init__()
        self.error_count = 0

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        start_time = time.time()
        user_id = None
        chat_id = None
        handler_name = None

        try:
            if getattr(event, 'from_user', None):
                user_id = event.from_user.id

            if getattr(event, 'chat', None):
                chat_id = event.chat.id
            elif getattr(event, 'message', None) and getattr(event.message, 'chat', None):
                chat_id = event.message.chat.id

            handler_name = resolve_handler_name(handler, data)

            if isinstance(event, Message):
                text = event.text or 'non-text'
                logger.debug(f"📩 Получено сообщение от {user_id}: {text[:100]}")
                log_message(user_id or 0, chat_id or 0, text, handler_name)
            elif isinstance(event, CallbackQuery):
                callback_data = event.data or 'no-data'
                logger.debug(f"🔘 Получен callback от {user_id}: {callback_data}")
                log_callback(user_id or 0, chat_id or 0, callback_data, handler_name)

            result = await handler(event, data)

            duration_ms = (time.time() - start_time) * 1000
            log_timing(handler_name or 'unknown_handler', duration_ms, user_id)
            return result

        except StoreUnavailableError as e:
            # Состояние канала не изменилось, пользователь может просто повторить
            log_error(e, {'handler_name': handler_name, 'chat_id': chat_id, 'channel_key': e.channel_key}, user_id)
            await self._reply(event, STORE_UNAVAILABLE_TEXT, user_id)
            return None

        except Exception as e:
            self.error_count += 1
            duration_ms = (time.time() - start_time) * 1000

            error_context = {
                'handler_name': handler_name,
                'duration_ms': duration_ms,
                'chat_id': chat_id,
                'error_count': self.error_count
            }
            if isinstance(event, Message):
                error_context['message_text'] = (event.text or 'non-text')[:200]
                error_context['event_type'] = 'message'
            elif isinstance(event, CallbackQuery):
                error_context['callback_data'] = event.data or 'no-data'
                error_context['event_type'] = 'callback'

            log_error(e, error_context, user_id)
            logger.error(f"❌ Ошибка в обработчике #{self.error_count} ({handler_name}): {e}")

            await self._reply(
                event,
                "⚠️ Произошла ошибка при обработке команды. "
                "Попробуйте ещё раз или обратитесь к ведущему.\n\n"
                f"🔍 Код ошибки: #{self.error_count}",
                user_id
            )
            return None

    @staticmethod
    async def _reply(event: TelegramObject, text: str, user_id) -> None:
        try:
            if isinstance(event, Message):
                await event.reply(text)
            elif isinstance(event, CallbackQuery):
                await event.answer(text, show_alert=True)
        except Exception as reply_error:
            logger.error(f"❌ Не удалось отправить сообщение об ошибке: {reply_error}")
            log_error(reply_error, {'context': 'error_reply_failed'}, user_id)


class PerformanceMiddleware(BaseMiddleware):
    """Middleware для мониторинга производительности."""

    def __init__(self, slow_threshold_ms: float = 1000):
        super().__init__()
        self.slow_threshold_ms = slow_threshold_ms

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        start_time = time.time()

        try:
            return await handler(event, data)
        finally:
            duration_ms = (time.time() - start_time) * 1000

            if duration_ms > self.slow_threshold_ms:
                user = getattr(event, 'from_user', None)
                handler_name = resolve_handler_name(handler, data)
                logger.warning(
                    f"🐌 Медленная операция: {handler_name} ({duration_ms:.2f}ms)",
                    extra={
                        'handler_name': handler_name,
                        'duration': duration_ms,
                        'user_id': getattr(user, 'id', None),
                    }
                )
