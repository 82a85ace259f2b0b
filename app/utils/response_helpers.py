from typing import Optional
from aiogram import html
from app.models.dto import JobRecord

PROGRESS_CELLS = 10
FILLED_CELL = "█"
EMPTY_CELL = "░"


def render_progress(progress: Optional[int]) -> str:
    """
    Progress bar with the numeric percentage, e.g. "[███░░░░░░░] 30%".
    Out-of-range values are clamped to 0..100.
    """
    p = max(0, min(100, progress or 0))
    filled = p // 10
    return f"[{FILLED_CELL * filled}{EMPTY_CELL * (PROGRESS_CELLS - filled)}] {p}%"


def format_status_message(job: JobRecord) -> str:
    """
    Reply to /status for the latest job of the chat.
    """
    status_text = job.status.upper().replace("_", " ")
    notes = job.notes or "Under review."
    lines = [
        "🚗 <b>YOUR VEHICLE STATUS</b>",
        f"<b>Order ID:</b> #{html.quote(job.id or '-')}",
        f"<b>Client:</b> {html.quote(job.client_name)}",
        f"<b>Vehicle:</b> {html.quote(job.vehicle_info)}",
        "",
        f"<b>Status:</b> {html.quote(status_text)}",
        f"<b>Progress:</b> {render_progress(job.progress)}",
        f"<b>Notes:</b> {html.quote(notes)}",
    ]
    return "\n".join(lines)


def format_staff_message(job: JobRecord) -> str:
    """
    Staff chat message for a new appointment or lead.
    """
    if job.is_lead:
        lines = [
            "🚨 <b>NEW LEAD</b>",
            f"Client: {html.quote(job.client_name)}",
            f"Info: {html.quote(job.vehicle_info)}",
        ]
    else:
        lines = [
            "🆕 <b>NEW APPOINTMENT</b>",
            f"Client: {html.quote(job.client_name)}",
            f"Car: {html.quote(job.vehicle_info)}",
            f"Issue: {html.quote(job.notes)}",
        ]

    if job.id:
        lines.append(f"🆔 Order: #{html.quote(job.id)}")
    lines.append(f"💬 Chat ID: {job.chat_id}")

    return "\n".join(lines)
