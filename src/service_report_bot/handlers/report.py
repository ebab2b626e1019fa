import asyncio
import logging
import re
import warnings
from datetime import date, datetime
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional, Sequence

import requests
from telegram import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    Message,
    ReplyKeyboardMarkup,
    ReplyKeyboardRemove,
    Update,
)
from telegram.ext import (
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)
from telegram.warnings import PTBUserWarning

from ..config import DOWNLOAD_DIR
from ..domain.service_report import (
    JOB_COMPLETED_VALUES,
    MACHINE_TYPES,
    SERVICE_TYPES,
    ImageFile,
    ServiceReportDraft,
)
from ..services import auth
from ..services.reference_data import ReferenceData, load_reference_data
from ..services.settings import ALLOWED_USER_IDS
from ..services.submission import ServiceReportWorkflow
from ..services.validation import active_conditional_fields
from ..utils.logging import log_print
from . import login as login_handlers
from .access import reply_private

logger = logging.getLogger("service_report_bot")

# Состояния FSM
(
    AWAIT_TEXT,
    AWAIT_CUSTOMER,
    AWAIT_SPARES,
    AWAIT_PHOTO,
    AWAIT_CONFIRM,
) = range(5)

BTN_SUBMIT = "Submit"
BTN_RESTART = "Restart"
BTN_CANCEL = "Cancel"
BTN_SKIP = "Skip"
KEYBOARD_LIMIT = 20

WORKFLOW_KEY = "report_workflow"
ASKED_KEY = "report_asked"
FIELD_KEY = "report_field"
SPARE_FILTER_KEY = "report_spare_filter"


class FormField(NamedTuple):
    name: str
    kind: str  # text | date | optional_date | time | choice | customer | spares | photo
    prompt: str
    choices: Sequence[str] = ()
    when: Optional[Callable[[ServiceReportDraft], bool]] = None


def _conditional(name: str) -> Callable[[ServiceReportDraft], bool]:
    return lambda draft: name in active_conditional_fields(draft)


FORM_FIELDS: List[FormField] = [
    FormField("SerialReportNumber", "text", "🔢 Serial report number:"),
    FormField("Date", "date", "📅 Report date (DD.MM.YYYY):"),
    FormField("Customer", "customer", "🏢 Select the customer or type part of its name:"),
    FormField("timeIn", "time", "🕘 Time in (HH:MM):"),
    FormField("timeOut", "time", "🕔 Time out (HH:MM):"),
    FormField("Quotation", "text", "📄 Quotation:"),
    FormField("PurchaseOrder", "text", "🧾 Purchase order:"),
    FormField("Inventory", "text", "📦 Inventory:"),
    FormField("MachineType", "choice", "🖨 Machine type:", MACHINE_TYPES),
    FormField("otherMachineType", "text", "✏️ Specify other machine type:", when=_conditional("otherMachineType")),
    FormField("headLife", "text", "⏳ Head life:", when=_conditional("headLife")),
    FormField("powerONtime", "text", "🔌 Power ON time:", when=_conditional("powerONtime")),
    FormField("JetRunningTime", "text", "💧 Jet running time:", when=_conditional("JetRunningTime")),
    FormField(
        "ServiceDueDate",
        "optional_date",
        "📅 Service due date (DD.MM.YYYY) or Skip:",
        when=lambda draft: draft.MachineType == "CIJ",
    ),
    FormField("INKtype", "text", "🖋 Ink type:", when=_conditional("INKtype")),
    FormField("SolventType", "text", "🧪 Solvent type:", when=_conditional("SolventType")),
    FormField("Model", "text", "🏷 Model:"),
    FormField("SerialNumber", "text", "🔢 Machine serial number:"),
    FormField("ServiceType", "choice", "🛠 Service type:", SERVICE_TYPES),
    FormField("otherServiceType", "text", "✏️ Specify other service type:", when=_conditional("otherServiceType")),
    FormField("Unicode", "text", "🔤 Unicode:", when=_conditional("Unicode")),
    FormField("Configurationcode", "text", "⚙️ Configuration code:", when=_conditional("Configurationcode")),
    FormField("description", "text", "📝 Job done description:"),
    FormField("JobCompleted", "choice", "✅ Job completed?", JOB_COMPLETED_VALUES),
    FormField("JobcompleteReason", "text", "❓ Reason for incomplete job:", when=_conditional("JobcompleteReason")),
    FormField("concernName", "text", "👤 Concern person name:"),
    FormField("customerdesignation", "text", "💼 Designation:"),
    FormField("customerPhoneNumber", "text", "📞 Customer phone number:"),
    FormField("spare", "spares", "🔩 Select the spare parts used, then press Done:"),
    FormField("serviceReportPicture", "photo", "📷 Send the service report photo:"),
    FormField("deliveryNotePicture", "photo", "📷 Send the delivery note photo:"),
]
FIELDS_BY_NAME = {f.name: f for f in FORM_FIELDS}

TIME_RE = re.compile(r"^(\d{1,2})[:.](\d{2})$")


def parse_date(text: str) -> Optional[str]:
    """ДД.ММ.ГГГГ или ГГГГ-ММ-ДД -> ISO-строка."""
    text = text.strip()
    for fmt in ("%d.%m.%Y", "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def parse_time(text: str) -> Optional[str]:
    m = TIME_RE.match(text.strip())
    if not m:
        return None
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def next_field(draft: ServiceReportDraft, asked: set) -> Optional[FormField]:
    for f in FORM_FIELDS:
        if f.name in asked:
            continue
        if f.when is not None and not f.when(draft):
            continue
        return f
    return None


def _workflow(context: ContextTypes.DEFAULT_TYPE) -> ServiceReportWorkflow:
    return context.user_data[WORKFLOW_KEY]


def _draft_photos(draft: ServiceReportDraft) -> List[ImageFile]:
    return [p for p in (draft.serviceReportPicture, draft.deliveryNotePicture) if p is not None]


def _remove_photos(photos: Sequence[ImageFile]) -> None:
    """Удаляет скачанные из Telegram файлы изображений."""
    for photo in photos:
        try:
            Path(photo.path).unlink(missing_ok=True)
        except OSError as e:
            log_print(logger, f"Не удалось удалить файл {photo.path}: {e}", "WARNING")


def _clear(context: ContextTypes.DEFAULT_TYPE) -> None:
    workflow = context.user_data.get(WORKFLOW_KEY)
    if workflow is not None:
        _remove_photos(_draft_photos(workflow.draft))
    for key in (WORKFLOW_KEY, ASKED_KEY, FIELD_KEY, SPARE_FILTER_KEY):
        context.user_data.pop(key, None)


def _customer_keyboard(reference: ReferenceData, text: str = "") -> InlineKeyboardMarkup:
    customers = reference.search_customers(text, limit=KEYBOARD_LIMIT)
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(c.display_label, callback_data=f"rep_cust_{c.id}")] for c in customers]
    )


def _spare_keyboard(reference: ReferenceData, selected: Sequence[str], text: str = "") -> InlineKeyboardMarkup:
    needle = text.strip().lower()
    spares = [s for s in reference.spares if not needle or needle in s.display_label.lower()]
    # выбранные запчасти показываем всегда, даже если они не попали в фильтр
    shown = [s for s in reference.spares if s.id in selected]
    shown += [s for s in spares if s.id not in selected][: max(KEYBOARD_LIMIT - len(shown), 0)]
    keyboard = [
        [InlineKeyboardButton(("✅ " if s.id in selected else "") + s.display_label, callback_data=f"rep_spare_{s.id}")]
        for s in shown
    ]
    keyboard.append([InlineKeyboardButton("✔️ Done", callback_data="rep_spare_done")])
    return InlineKeyboardMarkup(keyboard)


async def ask_next(message: Message, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Задаёт следующий незаполненный вопрос формы или показывает сводку."""
    workflow = _workflow(context)
    asked = context.user_data.setdefault(ASKED_KEY, set())
    field = next_field(workflow.draft, asked)
    if field is None:
        return await show_preview(message, context)

    context.user_data[FIELD_KEY] = field.name
    if field.kind == "customer":
        await message.reply_text(field.prompt, reply_markup=_customer_keyboard(workflow.reference))
        return AWAIT_CUSTOMER
    if field.kind == "spares":
        context.user_data[SPARE_FILTER_KEY] = ""
        await message.reply_text(
            field.prompt + "\n(type text to filter the list)",
            reply_markup=_spare_keyboard(workflow.reference, workflow.draft.spare),
        )
        return AWAIT_SPARES
    if field.kind == "photo":
        await message.reply_text(field.prompt, reply_markup=ReplyKeyboardRemove())
        return AWAIT_PHOTO

    if field.kind == "choice":
        reply_markup = ReplyKeyboardMarkup([[c] for c in field.choices], one_time_keyboard=True, resize_keyboard=True)
    elif field.kind == "date":
        reply_markup = ReplyKeyboardMarkup([[date.today().strftime("%d.%m.%Y")]], one_time_keyboard=True, resize_keyboard=True)
    elif field.kind == "optional_date":
        reply_markup = ReplyKeyboardMarkup([[BTN_SKIP]], one_time_keyboard=True, resize_keyboard=True)
    else:
        reply_markup = ReplyKeyboardRemove()
    await message.reply_text(field.prompt, reply_markup=reply_markup)
    return AWAIT_TEXT


async def report_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Начало заполнения сервисного отчёта."""
    if not auth.check_access(update.effective_user.id, ALLOWED_USER_IDS):
        await reply_private(update)
        return ConversationHandler.END

    session = await auth.ensure_user_authenticated(update)
    if not session:
        return ConversationHandler.END

    await update.message.reply_text("⏳ Loading customers and spare parts...")
    try:
        try:
            reference = await load_reference_data(session.token)
        except requests.HTTPError as e:
            if e.response is None or e.response.status_code != 401:
                raise
            # пробуем обновить сессию по сохранённым учётным данным
            session = await asyncio.to_thread(auth.refresh_session, update.effective_user.id)
            if not session:
                await update.message.reply_text("❌ Your session has expired. Use /login to sign in again.")
                return ConversationHandler.END
            reference = await load_reference_data(session.token)
    except requests.RequestException as e:
        log_print(logger, f"Не удалось загрузить справочники: {e}", "ERROR")
        await update.message.reply_text(f"❌ Could not load customers and spare parts: {e}")
        return ConversationHandler.END

    if not reference.customers or not reference.spares:
        await update.message.reply_text("❌ No customers or spare parts are available for your account.")
        return ConversationHandler.END

    _clear(context)
    context.user_data[WORKFLOW_KEY] = ServiceReportWorkflow(reference=reference)
    context.user_data[ASKED_KEY] = set()
    await update.message.reply_text("📝 New service report. Send /cancel at any time to stop.")
    return await ask_next(update.message, context)


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Ответ на текстовый вопрос формы (текст, дата, время, выбор из списка)."""
    field = FIELDS_BY_NAME[context.user_data[FIELD_KEY]]
    text = (update.message.text or "").strip()
    workflow = _workflow(context)

    if field.kind == "choice":
        if text not in field.choices:
            await update.message.reply_text("❌ Choose a value from the list:")
            return AWAIT_TEXT
        value = text
    elif field.kind == "date":
        value = parse_date(text)
        if not value:
            await update.message.reply_text("❌ Invalid date. Use DD.MM.YYYY (for example 31.01.2026):")
            return AWAIT_TEXT
    elif field.kind == "optional_date":
        if text.lower() == BTN_SKIP.lower():
            value = None
        else:
            value = parse_date(text)
            if not value:
                await update.message.reply_text("❌ Invalid date. Use DD.MM.YYYY or press Skip:")
                return AWAIT_TEXT
    elif field.kind == "time":
        value = parse_time(text)
        if not value:
            await update.message.reply_text("❌ Invalid time. Use HH:MM (for example 09:30):")
            return AWAIT_TEXT
    else:
        if not text:
            await update.message.reply_text("❌ The value cannot be empty:")
            return AWAIT_TEXT
        value = text

    setattr(workflow.draft, field.name, value)
    context.user_data[ASKED_KEY].add(field.name)
    return await ask_next(update.message, context)


async def handle_customer_search(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text or ""
    reference = _workflow(context).reference
    if not reference.search_customers(text):
        await update.message.reply_text("❌ No customers found. Try another name:")
        return AWAIT_CUSTOMER
    await update.message.reply_text("🏢 Select the customer:", reply_markup=_customer_keyboard(reference, text))
    return AWAIT_CUSTOMER


async def customer_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    workflow = _workflow(context)
    customer = workflow.reference.customer(query.data.replace("rep_cust_", "", 1))
    if not customer:
        await query.edit_message_text("❌ Unknown customer, select again.")
        return AWAIT_CUSTOMER

    workflow.draft.Customer = customer.id
    context.user_data[ASKED_KEY].add("Customer")
    await query.edit_message_text(f"✅ Customer: {customer.display_label}")
    return await ask_next(query.message, context)


async def handle_spare_filter(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text or ""
    workflow = _workflow(context)
    context.user_data[SPARE_FILTER_KEY] = text
    await update.message.reply_text(
        "🔩 Spare parts:",
        reply_markup=_spare_keyboard(workflow.reference, workflow.draft.spare, text),
    )
    return AWAIT_SPARES


async def spare_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    workflow = _workflow(context)
    data = query.data.replace("rep_spare_", "", 1)

    if data == "done":
        if not workflow.draft.spare:
            await query.answer("Select at least one spare part", show_alert=True)
            return AWAIT_SPARES
        await query.answer()
        labels = [s.display_label for s in (workflow.reference.spare(i) for i in workflow.draft.spare) if s]
        await query.edit_message_text("✅ Spare parts: " + ", ".join(labels))
        context.user_data[ASKED_KEY].add("spare")
        return await ask_next(query.message, context)

    await query.answer()
    if data in workflow.draft.spare:
        workflow.draft.spare = [s for s in workflow.draft.spare if s != data]
    elif workflow.reference.spare(data):
        workflow.draft.spare = workflow.draft.spare + [data]
    await query.edit_message_reply_markup(
        reply_markup=_spare_keyboard(
            workflow.reference, workflow.draft.spare, context.user_data.get(SPARE_FILTER_KEY, "")
        )
    )
    return AWAIT_SPARES


async def handle_photo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Фото (сжатое Telegram, всегда JPEG) или изображение, отправленное файлом."""
    field_name = context.user_data[FIELD_KEY]
    message = update.message
    if message.photo:
        tg_object = message.photo[-1]
        mime_type = "image/jpeg"
        file_name = f"{field_name}_{tg_object.file_unique_id}.jpg"
    elif message.document:
        tg_object = message.document
        mime_type = message.document.mime_type
        file_name = message.document.file_name or f"{field_name}_{tg_object.file_unique_id}"
    else:
        await message.reply_text("❌ Send a photo or an image file:")
        return AWAIT_PHOTO

    target_dir = Path(DOWNLOAD_DIR) / str(update.effective_user.id)
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"{field_name}_{Path(file_name).name}"
    try:
        tg_file = await context.bot.get_file(tg_object.file_id)
        await tg_file.download_to_drive(custom_path=target)
    except Exception as e:
        logger.exception("Не удалось скачать файл из Telegram")
        await message.reply_text(f"❌ Could not download the file: {e}. Send it again:")
        return AWAIT_PHOTO

    draft = _workflow(context).draft
    previous = getattr(draft, field_name)
    if previous is not None and Path(previous.path) != target:
        _remove_photos([previous])
    setattr(draft, field_name, ImageFile(path=str(target), mime_type=mime_type, file_name=file_name))
    context.user_data[ASKED_KEY].add(field_name)
    return await ask_next(message, context)


def format_preview(workflow: ServiceReportWorkflow) -> str:
    draft = workflow.draft
    lines = ["📝 Service report summary:", ""]
    for f in FORM_FIELDS:
        if f.when is not None and not f.when(draft):
            continue
        value = getattr(draft, f.name)
        if f.kind == "customer":
            customer = workflow.reference.customer(value) if value else None
            shown = customer.display_label if customer else value
        elif f.kind == "spares":
            shown = ", ".join(
                s.display_label if s else "?" for s in (workflow.reference.spare(i) for i in value)
            )
        elif f.kind == "photo":
            shown = value.file_name if value else None
        else:
            shown = value
        lines.append(f"{f.name}: {shown if shown not in (None, '') else '—'}")
    return "\n".join(lines)


async def show_preview(message: Message, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Показ сводки перед отправкой."""
    reply_markup = ReplyKeyboardMarkup(
        [[BTN_SUBMIT], [BTN_RESTART], [BTN_CANCEL]], one_time_keyboard=True, resize_keyboard=True
    )
    await message.reply_text(format_preview(_workflow(context)), reply_markup=reply_markup)
    return AWAIT_CONFIRM


async def handle_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Обработка финального подтверждения."""
    text = (update.message.text or "").strip()
    user_id = update.effective_user.id
    workflow = _workflow(context)

    # /login во время заполнения: email и пароль уходят в диалог авторизации
    if user_id in auth.auth_flow_stage:
        await login_handlers.text_handler(update, context)
        if user_id not in auth.auth_flow_stage:
            await _ask_confirm(update.message, "Your answers are kept. Press Submit to send the report.")
        return AWAIT_CONFIRM

    if text == BTN_RESTART:
        _remove_photos(_draft_photos(workflow.draft))
        workflow.reset()
        context.user_data[ASKED_KEY] = set()
        await update.message.reply_text("🔄 Starting over.")
        return await ask_next(update.message, context)
    if text != BTN_SUBMIT:
        await _ask_confirm(update.message, "Press Submit to send the report or Cancel to discard it.")
        return AWAIT_CONFIRM

    session = auth.get_session_context(user_id)
    if not session:
        await _ask_confirm(update.message, "❌ You are signed out. Use /login, then press Submit.")
        return AWAIT_CONFIRM

    await update.message.reply_text("⏳ Submitting...", reply_markup=ReplyKeyboardRemove())
    photos = _draft_photos(workflow.draft)
    outcome = await workflow.submit(session)

    if not outcome.ok and outcome.http_status == 401:
        # пробуем обновить сессию по сохранённым учётным данным и отправить ещё раз
        session = await asyncio.to_thread(auth.refresh_session, user_id)
        if not session:
            await _ask_confirm(
                update.message,
                "❌ Your session has expired. Use /login, then press Submit. Your answers are kept.",
            )
            return AWAIT_CONFIRM
        outcome = await workflow.submit(session)

    if outcome.ok:
        _remove_photos(photos)
        _clear(context)
        await update.message.reply_text(f"✅ {outcome.message}")
        return ConversationHandler.END

    if outcome.error_kind == "validation":
        details = "\n".join(f"• {name}: {msg}" for name, msg in outcome.errors.items())
        await update.message.reply_text(f"❌ {outcome.message}:\n{details}")
        asked = context.user_data[ASKED_KEY]
        for name in outcome.errors:
            asked.discard(name)
        return await ask_next(update.message, context)

    await _ask_confirm(update.message, f"❌ {outcome.message}\n\nYour answers are kept. Press Submit to try again.")
    return AWAIT_CONFIRM


async def _ask_confirm(message: Message, text: str) -> None:
    reply_markup = ReplyKeyboardMarkup([[BTN_SUBMIT], [BTN_CANCEL]], one_time_keyboard=True, resize_keyboard=True)
    await message.reply_text(text, reply_markup=reply_markup)


async def cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Отмена заполнения."""
    _clear(context)
    await update.message.reply_text("❌ Service report cancelled.", reply_markup=ReplyKeyboardRemove())
    return ConversationHandler.END


TEXT_INPUT = filters.TEXT & ~filters.COMMAND & ~filters.Regex(f"^{BTN_CANCEL}$")

# Форма ведётся по чату, а не по сообщению: CallbackQueryHandler внутри этого не меняет
with warnings.catch_warnings():
    warnings.filterwarnings("ignore", message="If .per_message=False.", category=PTBUserWarning)
    report_handler = ConversationHandler(
        entry_points=[CommandHandler("report", report_command)],
        states={
            AWAIT_TEXT: [MessageHandler(TEXT_INPUT, handle_text)],
            AWAIT_CUSTOMER: [
                CallbackQueryHandler(customer_callback, pattern="^rep_cust_"),
                MessageHandler(TEXT_INPUT, handle_customer_search),
            ],
            AWAIT_SPARES: [
                CallbackQueryHandler(spare_callback, pattern="^rep_spare_"),
                MessageHandler(TEXT_INPUT, handle_spare_filter),
            ],
            AWAIT_PHOTO: [MessageHandler(filters.PHOTO | filters.Document.ALL, handle_photo)],
            AWAIT_CONFIRM: [MessageHandler(TEXT_INPUT, handle_confirm)],
        },
        fallbacks=[CommandHandler("cancel", cancel), MessageHandler(filters.Regex(f"^{BTN_CANCEL}$"), cancel)],
        per_message=False,
    )
