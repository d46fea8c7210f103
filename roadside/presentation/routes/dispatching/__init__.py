from flask import Blueprint, current_app, request

from roadside.buisness.dispatching.errors import DispatchValidationError

dispatching_bp = Blueprint('dispatching', __name__)


def get_engine():
    return current_app.extensions['dispatch_engine']


def json_body() -> dict:
    """Request JSON object; an absent body reads as {}"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DispatchValidationError("Request body must be a JSON object")
    return data


# Import all route modules
from . import (  # noqa: E402,F401
    requests,
    tasks,
)
