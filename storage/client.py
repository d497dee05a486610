import json
import logging

import firebase_admin
from firebase_admin import credentials, firestore

from storage.firestore_store import FirestoreStore
from storage.memory_store import MemoryStore

logger = logging.getLogger(__name__)


def init_firestore(settings):
    """Initializes the Firebase Admin SDK and returns a Firestore client.

    Uses the service account JSON in FIREBASE_CREDENTIALS when present,
    otherwise application default credentials (which also covers the
    Firestore emulator through FIRESTORE_EMULATOR_HOST).
    """
    options = {"projectId": settings.firestore_project_id}
    if firebase_admin._apps:
        app = firebase_admin.get_app()
    else:
        if settings.firebase_credentials:
            try:
                cred = credentials.Certificate(json.loads(settings.firebase_credentials))
            except ValueError as e:
                logger.error("FIREBASE_CREDENTIALS is not valid service account JSON: %s", e)
                raise
            app = firebase_admin.initialize_app(cred, options)
        else:
            logger.warning("FIREBASE_CREDENTIALS not set, using application default credentials.")
            app = firebase_admin.initialize_app(options=options)

    logger.info("Firestore initialized for project %s (%s)",
                settings.firestore_project_id, settings.environment)
    return firestore.client(app)


def close_firestore(client):
    """Closes the Firestore client and releases the default Firebase app."""
    client.close()
    if firebase_admin._apps:
        firebase_admin.delete_app(firebase_admin.get_app())
    logger.info("Firestore disconnected")


def build_store(settings, firestore_client=None):
    """Creates the store backend selected by STORE_BACKEND."""
    if settings.store_backend == "memory":
        return MemoryStore()
    if firestore_client is None:
        firestore_client = init_firestore(settings)
    return FirestoreStore(firestore_client)
