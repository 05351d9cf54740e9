import os
import threading

import firebase_admin
from firebase_admin import credentials, firestore

_db = None
_lock = threading.Lock()


def get_db():
    """Firestore client, created on first use so importing the stores needs no credentials."""
    global _db
    with _lock:
        if _db is None:
            secrets_dir = os.getenv("SECRETS_DIR", ".secrets")
            firebase_path = os.path.join(secrets_dir, "firebase.json")
            try:
                firebase_admin.get_app()
            except ValueError:
                cred = credentials.Certificate(firebase_path)
                firebase_admin.initialize_app(cred)
            _db = firestore.client()
        return _db
