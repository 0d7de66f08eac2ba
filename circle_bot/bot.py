"""
Создание экземпляра бота, диспетчера и настройка middlewares.
"""

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.types import BotCommand

from .services.engine import get_engine
from .services.logger import setup_logging, get_logger

engine = get_engine()
settings = engine.settings

# Инициализируем систему логирования
setup_logging(settings.logs_dir)
logger = get_logger('bot')

if not settings.bot_token:
    raise ValueError("BOT_TOKEN не найден в переменных окружения")

# Создаем экземпляр бота
bot = Bot(
    token=settings.bot_token,
    default=DefaultBotProperties(parse_mode=ParseMode.HTML)
)

# Создаем диспетчер с поддержкой FSM
dp = Dispatcher(storage=MemoryStorage())


from .handlers import register, user_status, host, fallback

dp.include_router(register.router)
dp.include_router(user_status.router)
dp.include_router(host.router)
# Fallback хендлер должен быть последним
dp.include_router(fallback.router)

from .middlewares.error_handler import ErrorHandlerMiddleware, PerformanceMiddleware
dp.message.middleware(PerformanceMiddleware(slow_threshold_ms=500))
dp.callback_query.middleware(PerformanceMiddleware(slow_threshold_ms=500))
dp.message.middleware(ErrorHandlerMiddleware())
dp.callback_query.middleware(ErrorHandlerMiddleware())

logger.info("Handlers зарегистрированы")
logger.info("Middleware подключены")

BOT_COMMANDS = [
    BotCommand(command="register", description="📝 Зарегистрироваться"),
    BotCommand(command="status", description="📊 Где я в очереди"),
    BotCommand(command="queue", description="📋 Сессия и очередь"),
    BotCommand(command="waitlist", description="🕒 Лист ожидания"),
    BotCommand(command="stats", description="📈 Статистика канала"),
    BotCommand(command="cancel", description="❌ Отменить регистрацию"),
]


async def on_startup():
    """Выполняется при запуске бота."""
    from .services.scheduler import SweepScheduler

    logger.info("🚀 Запуск бота...")

    try:
        webhook_info = await bot.get_webhook_info()
        if webhook_info.url and not settings.use_webhook:
            logger.info(f"Обнаружен активный webhook в polling режиме: {webhook_info.url}")
            await bot.delete_webhook()
            logger.info("Webhook удален для polling режима")
        elif webhook_info.url:
            logger.info(f"✅ Webhook активен: {webhook_info.url}")
    except Exception as e:
        logger.warning(f"Ошибка при проверке webhook: {e}")

    me = await bot.get_me()
    logger.info(f"✅ Бот подключен: @{me.username} ({me.first_name})")

    await bot.set_my_commands(BOT_COMMANDS)
    logger.info("✅ Команды бота настроены")

    scheduler = SweepScheduler(engine)
    scheduler.start()
    dp['scheduler'] = scheduler

    logger.info("🎉 Бот запущен и готов к работе!")


async def on_shutdown():
    """Выполняется при остановке бота."""
    scheduler = dp.get('scheduler')
    if scheduler:
        scheduler.stop()

    logger.info("Бот остановлен")


dp.startup.register(on_startup)
dp.shutdown.register(on_shutdown)
