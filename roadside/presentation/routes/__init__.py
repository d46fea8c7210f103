"""
Routes package for the roadside dispatch engine
JSON API organized in a tiered structure mirroring the business modules
"""

from roadside.logger import get_logger

logger = get_logger("roadside.routes")

API_PREFIX = '/api/v1'


def init_app(app):
    """Initialize all route blueprints with the Flask app"""
    logger.debug("Initializing route blueprints")

    from .dispatching import dispatching_bp
    from . import conversations, settlement, reviews, errors

    app.register_blueprint(dispatching_bp, url_prefix=API_PREFIX)
    app.register_blueprint(conversations.bp, url_prefix=API_PREFIX)
    app.register_blueprint(settlement.bp, url_prefix=API_PREFIX)
    app.register_blueprint(reviews.bp, url_prefix=API_PREFIX)

    errors.register_error_handlers(app)

    logger.info(f"Registered API blueprints under {API_PREFIX}")
