import logging
from uuid import UUID

logger = logging.getLogger(__name__)


class NotAMemberError(Exception):
    def __init__(self, group_id: UUID, user_id: UUID):
        super().__init__(f"User {user_id} is not a member of group {group_id}")
        self.group_id = group_id
        self.user_id = user_id


class MembershipGate:
    """Answers whether a user belongs to a group, against current membership."""

    def __init__(self, storage):
        self.storage = storage

    def is_member(self, group_id: UUID, user_id: UUID) -> bool:
        return user_id in self.storage.group_members.get(group_id, ())

    def require_member(self, group_id: UUID, user_id: UUID) -> None:
        if not self.is_member(group_id, user_id):
            logger.warning("Rejected user %s: not a member of group %s", user_id, group_id)
            raise NotAMemberError(group_id, user_id)
