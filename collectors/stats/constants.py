from django.conf import settings
from pydantic_settings import BaseSettings, SettingsConfigDict

# the product name of the statistics over all the products
ALL_PRODUCTS = "-All-"

# date format of the rows in the statistics files
STATS_DATE_FMT = "%Y%m%d"

STATS_HEADER = """# Bugzilla Daily Bug Stats
#
# Do not edit me! This file is generated.
#
# fields: {fields}
# Product: {product}
# Created: {created}
"""


class StatsCollectorSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STATS_COLLECTOR_")

    enabled: bool = True
    data_dir: str = ""

    @property
    def mining_dir(self):
        return f"{self.data_dir or settings.DATA_DIR}/mining"
