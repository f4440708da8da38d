from celery import Celery, signals
from django.conf import settings
from kombu import Queue
from pydantic_settings import BaseSettings, SettingsConfigDict


class CelerySettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BUGDB_CELERY_")

    # the mail of one bug is sent in order through a dedicated queue
    enable_fifo: bool = False
    fifo_pool_size: int = 2


class FIFORouter:
    """
    A router sending the tasks given a 'bug_id' argument to a FIFO queue

    the queue is chosen by hashing the bug id so the mails of the same
    bug always go through the same single-worker queue and keep the order
    in which the changes were made while the different bugs do not wait
    for each other
    """

    def route_for_task(self, task, args=None, kwargs=None):
        celery_settings = CelerySettings()
        if not celery_settings.enable_fifo:
            return None

        bug_id = (kwargs or {}).get("bug_id")
        if bug_id is None and task == "apps.bugmail.tasks.send_bugmail" and args:
            bug_id = args[0]
        if bug_id is None:
            # the default routing for all the other tasks
            return None

        queue_name = f"fifo.{int(bug_id) % celery_settings.fifo_pool_size}"
        return {
            "queue": queue_name,
            "routing_key": queue_name,
        }


app = Celery("celery")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks(lambda: settings.INSTALLED_APPS)
app.conf.task_queues = [
    Queue("default", routing_key="default"),
    *[
        Queue(f"fifo.{i}", routing_key=f"fifo.{i}")
        for i in range(CelerySettings().fifo_pool_size)
    ],
]
app.conf.task_default_queue = "default"
app.conf.task_routes = ("config.celery.FIFORouter",)


@signals.setup_logging.connect
def on_celery_setup_logging(**kwargs):
    # keep the LOGGING of the Django settings
    pass
