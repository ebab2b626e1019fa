from ..config.settings import settings

BOT_TOKEN = settings.bot_token
ALLOWED_USER_IDS = settings.allowed_user_ids
