from __future__ import annotations

from telegram import Update


def private_text(user_id: int) -> str:
    return (
        "🔒 This bot is private.\n\n"
        "Ask your administrator to add your Telegram ID to the allowed list.\n\n"
        f"Your Telegram ID: {user_id}"
    )


async def reply_private(update: Update) -> None:
    uid = update.effective_user.id if update.effective_user else 0
    await update.message.reply_text(private_text(uid))
