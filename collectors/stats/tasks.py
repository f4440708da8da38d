"""
statistics collector tasks
"""
from celery.utils.log import get_task_logger

from config.celery import app

from . import core
from .constants import StatsCollectorSettings

logger = get_task_logger(__name__)


@app.task
def collect_stats():
    """append the daily counts to the statistics files"""
    stats_settings = StatsCollectorSettings()
    if not stats_settings.enabled:
        logger.info("Stats collector disabled, skipping")
        return None
    return core.collect_stats(stats_settings.mining_dir)


@app.task
def regenerate_stats():
    """rebuild the statistics files from the bug history"""
    return core.regenerate_stats(StatsCollectorSettings().mining_dir)


@app.task
def collect_series_data():
    if not StatsCollectorSettings().enabled:
        logger.info("Stats collector disabled, skipping")
        return None
    collected = core.collect_series_data()
    logger.info(f"Collected {len(collected)} series")
    return collected
