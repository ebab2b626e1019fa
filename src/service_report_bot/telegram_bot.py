from __future__ import annotations

from telegram import Update
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    filters,
)

from .config import LOG_LEVEL
from .services.settings import BOT_TOKEN
from .handlers import start as start_handlers
from .handlers import login as login_handlers
from .handlers import report as report_handlers
from .handlers import reports as reports_handlers
from .utils.logging import configure_logging, log_print

logger = configure_logging(LOG_LEVEL)


def build_application(token: str) -> Application:
    application = Application.builder().token(token).concurrent_updates(8).build()

    async def _on_error(update: object, context) -> None:
        # Исключения обработчиков не должны "молча" ронять обработку апдейтов.
        logger.error("Unhandled error while processing update: %s", context.error, exc_info=context.error)

    # Форма отчёта регистрируется первой: пока она активна, текст идёт в неё
    application.add_handler(report_handlers.report_handler)
    application.add_handler(CommandHandler("start", start_handlers.start))
    application.add_handler(CommandHandler("help", start_handlers.help_command))
    application.add_handler(CommandHandler("login", login_handlers.login_command))
    application.add_handler(CommandHandler("logout", login_handlers.logout_command))
    application.add_handler(CommandHandler("reports", reports_handlers.reports_command))
    application.add_handler(CommandHandler("export", reports_handlers.export_command))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, login_handlers.text_handler))
    application.add_error_handler(_on_error)
    return application


def main() -> None:
    log_print(logger, "=" * 60)
    log_print(logger, "ЗАПУСК БОТА")
    log_print(logger, "=" * 60)

    if not BOT_TOKEN:
        log_print(logger, "TELEGRAM_BOT_TOKEN не установлен в .env", "ERROR")
        return

    application = build_application(BOT_TOKEN)
    log_print(logger, "Обработчики зарегистрированы, запускаю polling")
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
