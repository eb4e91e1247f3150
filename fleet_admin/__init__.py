import logging

from flask import Flask
from config import Config
from fleet_admin.services.runtime import BuilderRuntime
from fleet_admin.services.geocoding import MapboxGeocoder

def configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logger = logging.getLogger('fleet_admin')
    logger.setLevel(level)
    if not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
        logger.addHandler(handler)
    app.logger.setLevel(level)

def create_app(config_class=Config, store_factory=None):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_logging(app)

    if store_factory is None:
        # Initialize Firebase
        from fleet_admin.services.firebase_service import init_firebase
        from fleet_admin.services.firestore_store import FirestoreFleetStore
        init_firebase(app)
        store_factory = FirestoreFleetStore

    runtime = BuilderRuntime(store_factory, call_timeout=app.config['ROUTE_BUILDER_CALL_TIMEOUT'])
    geocoder = MapboxGeocoder.from_config(app.config)
    runtime.close_on_shutdown(geocoder.aclose)
    app.extensions['route_builder'] = runtime
    app.extensions['geocoder'] = geocoder

    # Register Blueprints
    from fleet_admin.routes.auth import auth_bp
    from fleet_admin.routes.route_builder import route_builder_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(route_builder_bp)

    return app
