import json
import logging

import firebase_admin
from firebase_admin import credentials, firestore, firestore_async

logger = logging.getLogger(__name__)

db = None
async_db = None

def init_firebase(app):
    global db
    if not firebase_admin._apps:
        creds_config = app.config['FIREBASE_CREDENTIALS']

        if isinstance(creds_config, dict):
            cred = credentials.Certificate(creds_config)
        elif creds_config.startswith('{'):
            # It's a JSON string from env var
            cred_dict = json.loads(creds_config)
            cred = credentials.Certificate(cred_dict)
        else:
            # It's a file path
            cred = credentials.Certificate(creds_config)

        firebase_admin.initialize_app(cred)
        logger.info('Firebase initialised for project %s', cred.project_id)
    # Sync client drives snapshot listeners
    db = firestore.client()

def get_db():
    return db

def get_async_db():
    # Created on first use so it binds to the route builder loop
    global async_db
    if async_db is None:
        async_db = firestore_async.client()
    return async_db
