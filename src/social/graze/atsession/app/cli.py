import os
import logging
from logging.config import dictConfig
import json
from typing import Optional

import sentry_sdk

from social.graze.atsession.app.config import Settings


def configure_logging(settings: Optional[Settings] = None):
    logging_config_file = os.getenv("LOGGING_CONFIG_FILE", "")

    if len(logging_config_file) > 0:
        with open(logging_config_file) as fl:
            dictConfig(json.load(fl))
        return

    logging.basicConfig()
    level = logging.DEBUG if settings is not None and settings.debug else logging.INFO
    logging.getLogger().setLevel(level)


def configure_sentry(settings: Settings):
    if settings.sentry_dsn is None:
        return

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        send_default_pii=False,
    )
