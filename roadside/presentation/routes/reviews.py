"""
Review routes
"""

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from roadside.presentation.routes.dispatching import get_engine, json_body

bp = Blueprint('reviews', __name__)


@bp.post('/requests/<int:request_id>/review')
@login_required
def review_create(request_id):
    review = get_engine().create_review(request_id, current_user.id, json_body())
    return jsonify({'success': True, 'review': review.to_dict()}), 201


@bp.post('/reviews/<int:review_id>/response')
@login_required
def review_respond(review_id):
    review = get_engine().respond_to_review(review_id, current_user.id, json_body().get('response'))
    return jsonify({'success': True, 'review': review.to_dict()})
