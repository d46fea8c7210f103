"""
Conversation routes: one chat thread per assigned request
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from roadside.presentation.routes.dispatching import get_engine, json_body

bp = Blueprint('conversations', __name__)


@bp.post('/requests/<int:request_id>/conversation')
@login_required
def conversation_open(request_id):
    """Return the request's conversation, creating it on first use"""
    conversation = get_engine().get_or_create_conversation(request_id, current_user.id)
    return jsonify({'success': True, 'conversation': conversation.to_dict()})


@bp.get('/conversations/<int:conversation_id>/messages')
@login_required
def conversation_messages(conversation_id):
    engine = get_engine()
    conversation = engine.binder.get_for_participant(conversation_id, current_user.id, current_user.role)
    after_id = request.args.get('after_id', type=int)
    limit = min(request.args.get('limit', 50, type=int), 200)

    messages = engine.binder.list_messages(conversation.id, after_id=after_id, limit=limit)
    return jsonify({
        'success': True,
        'messages': [m.to_dict() for m in messages],
        'unread': engine.binder.unread_count(conversation.id, current_user.id),
    })


@bp.post('/conversations/<int:conversation_id>/messages')
@login_required
def conversation_post(conversation_id):
    data = json_body()
    message = get_engine().post_message(
        conversation_id,
        current_user.id,
        data.get('body'),
        message_type=data.get('message_type', 'text'),
        file_url=data.get('file_url'),
    )
    return jsonify({'success': True, 'message': message.to_dict()}), 201


@bp.post('/conversations/<int:conversation_id>/read')
@login_required
def conversation_mark_read(conversation_id):
    updated = get_engine().mark_read(conversation_id, current_user.id)
    return jsonify({'success': True, 'marked_read': updated})
