"""
Централизованная система логирования для бота Union Circle.
"""

import logging
import logging.handlers
import os
import json
import sys
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import threading
import time
from pathlib import Path

# Поля из extra, которые попадают в JSON-лог
EXTRA_FIELDS = ('user_id', 'chat_id', 'channel_key', 'handler_name', 'error_type', 'stack_trace')


class JsonFormatter(logging.Formatter):
    """Форматтер для JSON логов."""

    def format(self, record: logging.LogRecord) -> str:
        """Форматирует запись лога в JSON."""
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)
        if hasattr(record, 'duration'):
            log_data['duration_ms'] = record.duration

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


class BotLogger:
    """Менеджер логирования для бота."""

    def __init__(self, logs_dir: str = "logs"):
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self._start_time = time.time()

        self._metrics = {
            'messages_processed': 0,
            'callbacks_processed': 0,
            'errors_count': 0,
            'users_active': set(),
            'last_activity': time.time()
        }
        self._metrics_lock = threading.Lock()

        self._setup_loggers()

    def _setup_loggers(self):
        """Настраивает логгер circle_bot и его обработчики."""
        self.main_logger = logging.getLogger('circle_bot')
        self.main_logger.setLevel(logging.DEBUG)
        self.main_logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_formatter = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(console_formatter)
        self.main_logger.addHandler(console_handler)

        file_handler = logging.handlers.TimedRotatingFileHandler(
            self.logs_dir / "bot_all.log",
            when='midnight',
            interval=1,
            backupCount=7,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(console_formatter)
        self.main_logger.addHandler(file_handler)

        # Структурированные логи: смена очередей и регистрации по каналам
        json_handler = logging.handlers.TimedRotatingFileHandler(
            self.logs_dir / "bot_structured.jsonl",
            when='midnight',
            interval=1,
            backupCount=7,
            encoding='utf-8'
        )
        json_handler.setLevel(logging.INFO)
        json_handler.setFormatter(JsonFormatter())
        self.main_logger.addHandler(json_handler)

        error_handler = logging.handlers.TimedRotatingFileHandler(
            self.logs_dir / "bot_errors.log",
            when='midnight',
            interval=1,
            backupCount=30,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(JsonFormatter())
        self.main_logger.addHandler(error_handler)

        logging.getLogger('aiogram').setLevel(logging.WARNING)
        logging.getLogger('aiohttp').setLevel(logging.WARNING)

        self.main_logger.info("🔧 Система логирования инициализирована")

    def get_logger(self, name: str) -> logging.Logger:
        """Возвращает логгер с указанным именем."""
        return logging.getLogger(f'circle_bot.{name}')

    def _touch(self, counter: str, user_id: int):
        with self._metrics_lock:
            self._metrics[counter] += 1
            self._metrics['users_active'].add(user_id)
            self._metrics['last_activity'] = time.time()

    def log_message_processed(self, user_id: int, chat_id: int, message_text: str, handler_name: str = None):
        """Логирует обработку сообщения."""
        self._touch('messages_processed', user_id)
        self.get_logger('messages').info(
            f"📩 Сообщение обработано: {message_text[:50]}{'...' if len(message_text) > 50 else ''}",
            extra={'user_id': user_id, 'chat_id': chat_id, 'handler_name': handler_name}
        )

    def log_callback_processed(self, user_id: int, chat_id: int, callback_data: str, handler_name: str = None):
        """Логирует обработку callback."""
        self._touch('callbacks_processed', user_id)
        self.get_logger('callbacks').info(
            f"🔘 Callback обработан: {callback_data}",
            extra={'user_id': user_id, 'chat_id': chat_id, 'handler_name': handler_name}
        )

    def log_error(self, error: Exception, context: Dict[str, Any] = None, user_id: int = None):
        """Логирует ошибку с контекстом."""
        with self._metrics_lock:
            self._metrics['errors_count'] += 1

        extra_data = {
            'error_type': type(error).__name__,
            'stack_trace': traceback.format_exc()
        }
        if user_id:
            extra_data['user_id'] = user_id
        if context:
            extra_data.update(context)

        self.get_logger('errors').error(f"❌ Ошибка: {error}", extra=extra_data, exc_info=error)

    def log_handler_timing(self, handler_name: str, duration_ms: float, user_id: int = None):
        """Предупреждает о медленных обработчиках."""
        if duration_ms > 1000:
            self.get_logger('performance').warning(
                f"⏱️ Медленный обработчик: {handler_name} ({duration_ms:.2f}ms)",
                extra={'handler_name': handler_name, 'duration': duration_ms, 'user_id': user_id}
            )

    def get_metrics(self) -> Dict[str, Any]:
        """Возвращает текущие счетчики."""
        with self._metrics_lock:
            return {
                'messages_processed': self._metrics['messages_processed'],
                'callbacks_processed': self._metrics['callbacks_processed'],
                'errors_count': self._metrics['errors_count'],
                'active_users_count': len(self._metrics['users_active']),
                'last_activity': self._metrics['last_activity'],
                'uptime_seconds': time.time() - self._start_time
            }


_bot_logger: Optional[BotLogger] = None


def setup_logging(logs_dir: Optional[str] = None) -> BotLogger:
    """Инициализирует логирование один раз за процесс."""
    global _bot_logger
    if _bot_logger is None:
        _bot_logger = BotLogger(logs_dir or os.getenv('LOGS_DIR', 'logs'))
    return _bot_logger


def get_logger(name: str) -> logging.Logger:
    """Возвращает логгер для указанного модуля."""
    return logging.getLogger(f'circle_bot.{name}')


def log_message(user_id: int, chat_id: int, message_text: str, handler_name: str = None):
    setup_logging().log_message_processed(user_id, chat_id, message_text, handler_name)


def log_callback(user_id: int, chat_id: int, callback_data: str, handler_name: str = None):
    setup_logging().log_callback_processed(user_id, chat_id, callback_data, handler_name)


def log_error(error: Exception, context: Dict[str, Any] = None, user_id: int = None):
    setup_logging().log_error(error, context, user_id)


def log_timing(handler_name: str, duration_ms: float, user_id: int = None):
    setup_logging().log_handler_timing(handler_name, duration_ms, user_id)


def get_metrics() -> Dict[str, Any]:
    return setup_logging().get_metrics()
