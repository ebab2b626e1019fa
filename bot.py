import time
import logging

from service_report_bot.telegram_bot import main

logger = logging.getLogger("service_report_bot")


if __name__ == "__main__":
    while True:
        try:
            main()
            logger.error("Bot stopped (main() returned). Restarting in 5 seconds.")
            time.sleep(5)
        except KeyboardInterrupt:
            break
        except Exception as e:
            logger.exception("Bot stopped unexpectedly, restarting in 5 seconds: %s", e)
            time.sleep(5)
