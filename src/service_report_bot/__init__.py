"""Telegram-бот для инженеров сервиса: заполнение и отправка сервисных отчётов."""
