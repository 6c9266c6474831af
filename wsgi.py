import logging
import os

import config
from app import app, init_db


log = logging.getLogger(__name__)


def _prepare_runtime() -> None:
    # Gunicorn imports this module once per worker; every step is idempotent.
    for path in (config.UPLOAD_DIR, config.EXPORT_DIR):
        os.makedirs(path, exist_ok=True)
    init_db()
    log.info("%s ready (env=%s, db=%s)", config.APP_NAME, config.APP_ENV, config.DB_PATH)


_prepare_runtime()
