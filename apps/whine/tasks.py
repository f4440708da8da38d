from celery.utils.log import get_task_logger

from config.celery import app

from .core import run_whines as run_due_whines

logger = get_task_logger(__name__)


@app.task
def run_whines():
    """mail the due whine schedules"""
    sent = run_due_whines()
    logger.info(f"Sent {sent} whine mails")
    return f"Sent {sent} whine mails"
