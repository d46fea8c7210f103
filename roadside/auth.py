"""
Actor resolution for the JSON API.

Accounts are created and logged in by the external auth service; this app
only verifies the signed bearer token it hands out and loads the actor.
"""

from flask import current_app, jsonify
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from roadside import db, login_manager
from roadside.data.core.user_info.user import User
from roadside.logger import get_logger

logger = get_logger("roadside.auth")

TOKEN_SALT = 'roadside-actor'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_actor_token(user_id: int) -> str:
    return _serializer().dumps({'uid': user_id})


def load_actor_from_token(token: str):
    try:
        data = _serializer().loads(token, max_age=current_app.config['ACTOR_TOKEN_MAX_AGE'])
    except SignatureExpired:
        logger.info("Rejected expired actor token")
        return None
    except BadSignature:
        logger.warning("Rejected actor token with bad signature")
        return None

    user = db.session.get(User, data.get('uid'))
    if user is None or not user.is_active:
        logger.warning(f"Actor token for unknown or inactive user {data.get('uid')}")
        return None
    return user


@login_manager.request_loader
def load_user_from_request(request):
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token:
        return None
    return load_actor_from_token(token.strip())


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'success': False, 'error': 'Authentication required'}), 401
