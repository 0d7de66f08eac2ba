"""
Планировщик периодической уборки: брошенные регистрации, просроченный кэш и баны.
"""

import asyncio
import logging
from typing import Optional

from .engine import CircleEngine

logger = logging.getLogger(__name__)


class SweepScheduler:
    """Раз в interval секунд чистит то, что истекло само по себе."""

    def __init__(self, engine: CircleEngine, interval: float = 60):
        self.engine = engine
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def start(self):
        """Запускает планировщик."""
        if self._running:
            logger.warning("Планировщик уже запущен")
            return

        self._running = True
        self._task = asyncio.create_task(self._scheduler_loop())
        logger.info(f"🧹 Планировщик уборки запущен (каждые {self.interval:g} сек)")

    def stop(self):
        """Останавливает планировщик."""
        if not self._running:
            return

        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()

        logger.info("Планировщик уборки остановлен")

    def run_once(self) -> int:
        """Один проход уборки. Возвращает, сколько записей удалено."""
        removed = self.engine.sweep()
        removed += self.engine.bans.purge_expired()
        if removed:
            logger.debug(f"Уборка: удалено {removed}")
        return removed

    async def _scheduler_loop(self):
        """Основной цикл планировщика."""
        try:
            while self._running:
                await asyncio.sleep(self.interval)
                if not self._running:
                    break
                try:
                    self.run_once()
                except Exception as e:
                    logger.error(f"Ошибка при уборке: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.info("Планировщик был отменен")
