from telegram import Update
from telegram.ext import ContextTypes

from ..services import auth
from ..services.settings import ALLOWED_USER_IDS
from .access import reply_private

COMMANDS_TEXT = (
    "/report - File a service report\n"
    "/reports - Recent service reports\n"
    "/export [report number] - Report as a DOCX document\n"
    "/login - Sign in\n"
    "/logout - Sign out\n"
    "/cancel - Stop filling the current report\n"
    "/help - Help\n"
)


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Команда /start"""
    if not auth.check_access(update.effective_user.id, ALLOWED_USER_IDS):
        await reply_private(update)
        return

    user_id = update.effective_user.id
    text = "🛠 Field service reports bot\n\nAvailable commands:\n" + COMMANDS_TEXT

    session = auth.get_session(user_id)
    if session and session.name:
        text += f"\n👤 Signed in as {session.name}\n"

    await update.message.reply_text(text)

    if not session:
        await auth._prompt_login(update)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Команда /help"""
    if not auth.check_access(update.effective_user.id, ALLOWED_USER_IDS):
        await reply_private(update)
        return

    text = (
        "📖 Commands:\n\n"
        + COMMANDS_TEXT
        + "\nExample:\n"
        "/export SR-1024\n"
    )
    await update.message.reply_text(text)
