"""Group conversation lifecycle.

    created -> active -> (member added | member removed | member left |
                          image updated) -> active -> deleted

Only the admin may add or remove members, change the image or delete the
group. Any other participant may leave; the admin may not (they delete the
group instead). Neither removal nor leaving may shrink a group below two
participants. After each transition the updated conversation is pushed to
every participant's live connection: the affected user gets a dedicated
event, everyone else gets ``groupUpdated``.
"""
import logging
from typing import Any, Dict, List

from together.errors import BadRequest, ConversationNotFound, Forbidden, UserNotFound
from together.users.service import UserStore

from .directory import ConnectionDirectory
from .schemas import Conversation
from .service import ConversationQueries
from .store import ConversationStore

logger = logging.getLogger(__name__)

NEW_GROUP_CONVERSATION = "newGroupConversation"
GROUP_UPDATED = "groupUpdated"
ADDED_TO_GROUP = "addedToGroup"
REMOVED_FROM_GROUP = "removedFromGroup"
LEFT_GROUP = "leftGroup"
GROUP_DELETED = "groupDeleted"

MIN_GROUP_SIZE = 2


class GroupService:
    def __init__(
        self,
        store: ConversationStore,
        users: UserStore,
        queries: ConversationQueries,
        directory: ConnectionDirectory,
    ) -> None:
        self.store = store
        self.users = users
        self.queries = queries
        self.directory = directory

    def require_group(self, conversation_id: str) -> Conversation:
        conversation = self.store.get(conversation_id)
        if conversation is None:
            raise ConversationNotFound("Group not found")
        if not conversation.isGroupChat:
            raise BadRequest("This is not a group conversation")
        return conversation

    def require_admin(self, conversation_id: str, actor_id: str, action: str) -> Conversation:
        conversation = self.require_group(conversation_id)
        if conversation.groupAdmin != actor_id:
            raise Forbidden(f"Only group admin can {action}")
        return conversation

    async def create_group(self, admin_id: str, participant_ids: List[str], group_name: str) -> Dict[str, Any]:
        if not participant_ids or not group_name or not group_name.strip():
            raise BadRequest("Participant IDs (as an array) and group name are required.")

        participants = list(dict.fromkeys([*participant_ids, admin_id]))
        if len(participants) < MIN_GROUP_SIZE:
            raise BadRequest("A group chat must have at least two unique participants.")
        if len(self.users.existing_ids(participants)) != len(participants):
            raise BadRequest("One or more specified participant IDs are invalid or do not exist.")

        conversation = self.store.create_conversation(
            participants, is_group=True, group_name=group_name.strip(), group_admin=admin_id
        )
        populated = self.queries.populate(conversation)
        logger.info("[Groups] %s created group %s with %d members", admin_id, conversation.id, len(participants))

        for user_id in participants:
            self.directory.join_user(user_id, conversation.id)
        await self.directory.broadcast_to_users(
            participants, NEW_GROUP_CONVERSATION, {"conversation": populated}
        )
        return populated

    async def add_member(self, actor_id: str, conversation_id: str, user_id: str) -> Dict[str, Any]:
        conversation = self.require_admin(conversation_id, actor_id, "add members")
        if not self.users.exists(user_id):
            raise UserNotFound()
        if conversation.is_participant(user_id):
            raise BadRequest("User is already a member of this group")

        updated = self.store.set_participants(conversation_id, [*conversation.participants, user_id])
        populated = self.queries.populate(updated)
        logger.info("[Groups] %s added %s to %s", actor_id, user_id, conversation_id)

        self.directory.join_user(user_id, conversation_id)
        await self.directory.broadcast_to_user(user_id, ADDED_TO_GROUP, {"conversation": populated})
        await self._notify_rest(updated, exclude=user_id, populated=populated)
        return populated

    async def remove_member(self, actor_id: str, conversation_id: str, user_id: str) -> Dict[str, Any]:
        conversation = self.require_admin(conversation_id, actor_id, "remove members")
        if user_id == conversation.groupAdmin:
            raise BadRequest("Admin cannot be removed from the group")
        if not conversation.is_participant(user_id):
            raise BadRequest("User is not a member of this group")
        self._require_remaining_members(conversation)

        updated = self.store.set_participants(
            conversation_id, [p for p in conversation.participants if p != user_id]
        )
        populated = self.queries.populate(updated)
        logger.info("[Groups] %s removed %s from %s", actor_id, user_id, conversation_id)

        self.directory.leave_user(user_id, conversation_id)
        await self.directory.broadcast_to_user(user_id, REMOVED_FROM_GROUP, {"conversationId": conversation_id})
        await self._notify_rest(updated, exclude=user_id, populated=populated)
        return populated

    async def leave_group(self, user_id: str, conversation_id: str) -> None:
        conversation = self.require_group(conversation_id)
        if not conversation.is_participant(user_id):
            raise BadRequest("You are not a member of this group")
        if conversation.groupAdmin == user_id:
            raise BadRequest("As the admin, you should delete the group instead of leaving")
        self._require_remaining_members(conversation)

        updated = self.store.set_participants(
            conversation_id, [p for p in conversation.participants if p != user_id]
        )
        logger.info("[Groups] %s left %s", user_id, conversation_id)

        self.directory.leave_user(user_id, conversation_id)
        await self.directory.broadcast_to_user(user_id, LEFT_GROUP, {"conversationId": conversation_id})
        await self._notify_rest(updated, exclude=user_id)

    async def delete_group(self, actor_id: str, conversation_id: str) -> None:
        conversation = self.require_admin(conversation_id, actor_id, "delete the group")
        self.store.delete(conversation_id)
        logger.info("[Groups] %s deleted group %s", actor_id, conversation_id)

        await self.directory.broadcast_to_users(
            conversation.participants, GROUP_DELETED, {"conversationId": conversation_id}
        )
        self.directory.close_room(conversation_id)

    async def update_group_image(self, actor_id: str, conversation_id: str, image_url: str) -> Dict[str, Any]:
        self.require_admin(conversation_id, actor_id, "update group image")
        updated = self.store.set_group_image(conversation_id, image_url)
        populated = self.queries.populate(updated)
        await self.directory.broadcast_to_users(updated.participants, GROUP_UPDATED, {"conversation": populated})
        return populated

    @staticmethod
    def _require_remaining_members(conversation: Conversation) -> None:
        if len(conversation.participants) <= MIN_GROUP_SIZE:
            raise BadRequest(
                f"A group chat must keep at least {MIN_GROUP_SIZE} participants; delete the group instead"
            )

    async def _notify_rest(self, conversation: Conversation, exclude: str, populated: Dict[str, Any] = None) -> None:
        if populated is None:
            populated = self.queries.populate(conversation)
        await self.directory.broadcast_to_users(
            [p for p in conversation.participants if p != exclude],
            GROUP_UPDATED,
            {"conversation": populated},
        )
