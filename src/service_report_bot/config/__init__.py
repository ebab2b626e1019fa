from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from .settings import settings  # noqa: E402

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"


def _ensure_dir(path: str):
    Path(path).mkdir(parents=True, exist_ok=True)


API_BASE_URL = settings.api_base_url.rstrip("/")
REQUEST_TIMEOUT = settings.request_timeout
LOG_LEVEL = settings.log_level.upper()

# --- Asset host ---
CLOUDINARY_URL = settings.cloudinary_url
CLOUDINARY_CLOUD_NAME = settings.cloudinary_cloud_name
UPLOAD_PRESET_REPORT = settings.upload_preset_report
UPLOAD_PRESET_DELIVERY = settings.upload_preset_delivery

# --- Пользовательские данные ---
USER_SESSION_DIR = settings.user_session_dir
DOWNLOAD_DIR = settings.download_dir
CACHE_DIR = settings.cache_dir

# --- Экспорт ---
REPORT_TEMPLATE_PATH = (
    Path(settings.report_template_path)
    if settings.report_template_path
    else DATA_DIR / "templates" / "report_template.docx"
)
REPORTS_LIST_LIMIT = settings.reports_list_limit

_ensure_dir(USER_SESSION_DIR)
_ensure_dir(DOWNLOAD_DIR)
_ensure_dir(CACHE_DIR)
