"""
Точка входа для запуска бота: python -m circle_bot
"""

import asyncio
import logging

from aiohttp import web
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application

from .bot import bot, dp, settings
from .services.logger import get_metrics

logger = logging.getLogger(__name__)


async def health_check(request):
    """Health check для хостинга."""
    return web.json_response({"status": "ok", "mode": "webhook", "metrics": get_metrics()})


async def on_webhook_startup(app: web.Application):
    await bot.set_webhook(settings.webhook_url)
    logger.info(f"✅ Webhook установлен: {settings.webhook_url}")


def create_webhook_app() -> web.Application:
    """Создает aiohttp приложение с webhook и health check."""
    if not settings.webhook_url:
        raise ValueError("WEBHOOK_URL не найден в переменных окружения при USE_WEBHOOK=true")

    app = web.Application()
    SimpleRequestHandler(dispatcher=dp, bot=bot).register(app, path="/webhook")
    app.router.add_get("/", health_check)
    app.router.add_get("/health", health_check)
    app.on_startup.append(on_webhook_startup)
    setup_application(app, dp, bot=bot)
    return app


async def polling_main():
    """Запуск бота через long polling."""
    logger.info("📡 Запуск в режиме long polling...")

    webhook_info = await bot.get_webhook_info()
    if webhook_info.url:
        logger.info(f"Очищаем webhook: {webhook_info.url}")
        await bot.delete_webhook(drop_pending_updates=True)

    await dp.start_polling(bot)


def main():
    """Главная функция запуска."""
    logger.info(f"🚀 Запуск union-circle-bot, режим: {'webhook' if settings.use_webhook else 'polling'}")

    try:
        if settings.use_webhook:
            logger.info(f"🌐 Запуск webhook сервера на порту {settings.port}")
            web.run_app(create_webhook_app(), host='0.0.0.0', port=settings.port)
        else:
            asyncio.run(polling_main())
    except KeyboardInterrupt:
        logger.info("🔴 Получен сигнал прерывания")
    finally:
        logger.info("🔴 Бот остановлен")


if __name__ == '__main__':
    main()
