from app.utils.background import BackgroundTasks
from app.utils.response_helpers import render_progress

__all__ = ["BackgroundTasks", "render_progress"]
