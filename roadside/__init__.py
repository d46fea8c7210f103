from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import os
from roadside.logger import get_logger

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2000 per day", "300 per hour"],
    storage_uri="memory://"  # Use Redis in production for distributed systems
)


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes', 'on')


def create_app(config_overrides=None):
    from pathlib import Path

    app = Flask(__name__)

    # Get singleton logger
    logger = get_logger("roadside")
    logger.info("Initializing Flask application")

    # SECURITY: Require SECRET_KEY in environment - no fallback
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY')

    # Prefer an explicit DATABASE_URL env var; otherwise keep the SQLite
    # database inside the project's `instance/` directory.
    db_env = os.environ.get('DATABASE_URL')
    if db_env:
        app.config['SQLALCHEMY_DATABASE_URI'] = db_env
    else:
        base_dir = Path(__file__).parent.parent
        instance_dir = base_dir / 'instance'
        instance_dir.mkdir(parents=True, exist_ok=True)
        default_db_path = instance_dir / 'roadside.db'
        app.config['SQLALCHEMY_DATABASE_URI'] = f"sqlite:///{str(default_db_path.resolve())}"

    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    # Claims from several providers land within milliseconds; give SQLite
    # writers time to queue instead of failing with "database is locked".
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {'connect_args': {'timeout': 30}} \
        if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite') else {}

    # Broadcast / candidate selection
    app.config['BROADCAST_DEFAULT_RADIUS_KM'] = float(os.environ.get('BROADCAST_DEFAULT_RADIUS_KM', '10'))
    app.config['BROADCAST_MAX_RADIUS_KM'] = float(os.environ.get('BROADCAST_MAX_RADIUS_KM', '50'))
    app.config['BROADCAST_MAX_CANDIDATES'] = int(os.environ.get('BROADCAST_MAX_CANDIDATES', '20'))

    # Settlement
    app.config['PAYMENT_CURRENCY'] = os.environ.get('PAYMENT_CURRENCY', 'INR')
    app.config['PROCESSING_FEE_RATE'] = float(os.environ.get('PROCESSING_FEE_RATE', '0.02'))
    app.config['PROCESSING_FEE_MIN'] = int(os.environ.get('PROCESSING_FEE_MIN', '5'))
    app.config['PROCESSING_FEE_MAX'] = int(os.environ.get('PROCESSING_FEE_MAX', '200'))
    app.config['RAZORPAY_KEY_ID'] = os.environ.get('RAZORPAY_KEY_ID', '')
    app.config['RAZORPAY_KEY_SECRET'] = os.environ.get('RAZORPAY_KEY_SECRET', '')
    app.config['GATEWAY_BASE_URL'] = os.environ.get('GATEWAY_BASE_URL', 'https://api.razorpay.com/v1')
    app.config['GATEWAY_TIMEOUT_SECONDS'] = float(os.environ.get('GATEWAY_TIMEOUT_SECONDS', '10'))
    app.config['PAYMENT_GATEWAY_CLIENT'] = None

    # Actor tokens (issued by the external auth service, verified here)
    app.config['ACTOR_TOKEN_MAX_AGE'] = int(os.environ.get('ACTOR_TOKEN_MAX_AGE', '86400'))

    app.config['RATELIMIT_ENABLED'] = _env_flag('RATELIMIT_ENABLED', 'True')

    if config_overrides:
        app.config.update(config_overrides)

    if not app.config['SECRET_KEY']:
        logger.critical("SECRET_KEY not set in environment! Application cannot start.")
        raise RuntimeError("SECRET_KEY environment variable is required")

    logger.debug(f"Database configured: {app.config['SQLALCHEMY_DATABASE_URI'].split(':', 1)[0]}")

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    logger.debug("Extensions initialized")

    # Import models to ensure they're registered with SQLAlchemy
    from roadside.data.core.user_info.user import User
    from roadside.data.dispatching.service_request import ServiceRequest
    from roadside.data.dispatching.status_history import StatusHistory
    from roadside.data.dispatching.request_note import RequestNote
    from roadside.data.conversations.conversation import Conversation
    from roadside.data.conversations.message import Message
    from roadside.data.settlement.payment import Payment
    from roadside.data.reviews.review import Review

    logger.debug("Models imported and registered")

    # Actor resolution for the JSON API
    from roadside import auth  # noqa: F401

    # Dispatch engine shared by all request handlers
    from roadside.buisness.dispatching.engine import build_engine
    app.extensions['dispatch_engine'] = build_engine(app)

    from roadside.presentation.routes import init_app as init_routes
    init_routes(app)

    logger.info("Flask application initialized")
    return app
