import os
import datetime

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'your_fixed_secret_key_here_replace_in_production'
    PERMANENT_SESSION_LIFETIME = datetime.timedelta(days=30)
    # Prefer env var for credentials, fallback to file
    FIREBASE_CREDENTIALS = os.environ.get('FIREBASE_CREDENTIALS_JSON') or 'serviceAccountKey.json'

    # Address search (Mapbox forward geocoding)
    MAPBOX_TOKEN = os.environ.get('MAPBOX_TOKEN', '')
    GEOCODER_PROXIMITY = os.environ.get('GEOCODER_PROXIMITY', '79.8612,6.9271')  # lng,lat (Colombo)
    GEOCODER_TYPES = os.environ.get('GEOCODER_TYPES', 'address')
    GEOCODER_TIMEOUT = float(os.environ.get('GEOCODER_TIMEOUT', 10))

    # Seconds a request waits for the route builder loop
    ROUTE_BUILDER_CALL_TIMEOUT = float(os.environ.get('ROUTE_BUILDER_CALL_TIMEOUT', 30))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
