import logging
import os
import threading

import firebase_admin
from firebase_admin import credentials, db

from shared.config import SECRETS_DIR, firebase_database_url

logger = logging.getLogger(__name__)

_app = None
_app_lock = threading.Lock()


def get_app() -> firebase_admin.App:
    """Initialise the default Firebase app once, on first use."""
    global _app
    with _app_lock:
        if _app is None:
            firebase_path = os.path.join(SECRETS_DIR, "firebase.json")
            cred = credentials.Certificate(firebase_path)
            _app = firebase_admin.initialize_app(cred, {"databaseURL": firebase_database_url()})
            logger.info("[FIREBASE] initialised app with %s", firebase_path)
        return _app


def reference(path: str = "/") -> db.Reference:
    return db.reference(path, app=get_app())
