"""
Provider task board routes
"""

from flask import jsonify, request
from flask_login import current_user, login_required

from roadside.buisness.dispatching.errors import DispatchValidationError, UnauthorizedError
from roadside.buisness.dispatching.state_machine import RequestStateMachine
from roadside.presentation.routes.dispatching import dispatching_bp
from roadside.services.dispatching.request_service import ServiceRequestQueryService


@dispatching_bp.get('/tasks')
@login_required
def tasks_list():
    """Open requests the provider can claim plus its own assignments"""
    if not current_user.is_mechanic:
        raise UnauthorizedError("Only providers have a task board", actor_id=current_user.id)

    status = request.args.get('status')
    if status and status not in RequestStateMachine.STATUSES:
        raise DispatchValidationError(f"Unknown status: {status}", field='status')

    tasks = ServiceRequestQueryService.get_provider_tasks(current_user, status=status)
    return jsonify({'success': True, 'tasks': tasks, 'count': len(tasks)})
