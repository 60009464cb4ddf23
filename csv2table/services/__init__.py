from .notification import NotificationError, send_notification
from .orchestrator import ProcessingError, import_file, process_all
from .summary import render_summary_line

__all__ = [
    "NotificationError",
    "ProcessingError",
    "import_file",
    "process_all",
    "render_summary_line",
    "send_notification",
]
