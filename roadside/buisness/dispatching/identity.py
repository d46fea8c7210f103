"""
Identity seam

Registration, credentials and profiles live in the external auth service.
The engine only asks two questions: who is this actor, and what role do
they hold right now.
"""

from typing import Optional

from roadside import db
from roadside.buisness.dispatching.errors import UnauthorizedError


class IdentityService:
    """Resolves actor ids against the local users projection"""

    def get_actor(self, actor_id: Optional[int]):
        """
        Return the active User for actor_id.

        Raises:
            UnauthorizedError: If the actor is unknown or inactive
        """
        from roadside.data.core.user_info.user import User

        if actor_id is None:
            raise UnauthorizedError("Actor is required")
        user = db.session.get(User, actor_id)
        if user is None or not user.is_active:
            raise UnauthorizedError("Unknown or inactive actor", actor_id=actor_id)
        return user

    def role_of(self, actor_id: Optional[int]) -> str:
        return self.get_actor(actor_id).role
