import firebase_admin
from firebase_admin import credentials, messaging
from bookingcore.configuration.config import Config
from bookingcore.configuration.monitor import logger

_app = None

def get_firebase_app():
    """
    Initialise the Firebase Admin app once.
    Returns None when no service-account credentials are configured, which
    leaves push delivery unavailable.
    """
    global _app
    if _app is not None:
        return _app
    if not Config.FIREBASE_CREDENTIALS:
        logger.info("FIREBASE_CREDENTIALS not set, push notifications disabled")
        return None
    try:
        _app = firebase_admin.get_app()
    except ValueError:
        options = {"projectId": Config.FIREBASE_PROJECT_ID} if Config.FIREBASE_PROJECT_ID else None
        _app = firebase_admin.initialize_app(
            credentials.Certificate(Config.FIREBASE_CREDENTIALS),
            options
        )
    return _app

def get_messaging():
    """Return the firebase_admin messaging module when an app is available, else None."""
    if get_firebase_app() is None:
        return None
    return messaging
