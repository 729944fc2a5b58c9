"""
AssistantBridge: connects the conversation in the store to the AI responders.

Every request is tagged with the session id current at call time. When the
reply arrives it is delivered through the store's stale-response guard, so a
reply for a session that was closed or replaced in the meantime is dropped.
Responder failures propagate to the caller; the conversation is left as it
was before the call (the user's own message stays).
"""
from typing import Any, Dict, Mapping, Optional

from planner.conversation import ConversationMode
from planner.interventions import Resolution, ResolutionOutcome
from planner.logger import get_logger
from planner.responders import Responder, ResponderReply
from planner.store import PlannerStore

logger = get_logger("assistant")


class AssistantBridge:
    def __init__(self, store: PlannerStore, responders: Mapping[ConversationMode, Responder]):
        self.store = store
        self.responders = dict(responders)

    def _responder(self, mode: ConversationMode) -> Responder:
        responder = self.responders.get(ConversationMode(mode))
        if responder is None:
            raise KeyError(f"No responder configured for {mode}")
        return responder

    async def request_initial_response(
        self, extra_context: Optional[Dict[str, Any]] = None
    ) -> Optional[ResponderReply]:
        """
        Ask the current persona to open a trigger-driven conversation.

        Returns the reply, or None if there is nothing to answer (no open
        session or no trigger context) or the reply went stale.
        """
        conversation = self.store.state.conversation
        if not conversation.is_open or conversation.context is None or conversation.context.trigger is None:
            return None

        session_id = conversation.session_id
        mode = conversation.mode
        trigger = conversation.context.trigger

        reply = await self._responder(mode).get_initial_response(
            trigger.type.value, self.store.state.health, extra_context
        )
        if not self.store.deliver_reply(session_id, mode.value, reply.message, reply.actions()):
            logger.info(f"Initial {mode.value} reply for {session_id} arrived after the session ended")
            return None
        return reply

    async def send_user_message(
        self, text: str, context: Optional[Dict[str, Any]] = None
    ) -> Optional[ResponderReply]:
        """
        Append the user's message and fetch the persona's answer.

        `should_escalate` is only reported back; escalation stays a user
        decision. `should_close` resolves the active intervention (or just
        closes an ad hoc conversation).
        """
        message_id = self.store.add_message("user", text)
        if message_id is None:
            return None

        conversation = self.store.state.conversation
        session_id = conversation.session_id
        mode = conversation.mode
        history = conversation.messages[:-1]

        reply = await self._responder(mode).respond_to_user(text, history, context)
        if not self.store.deliver_reply(session_id, mode.value, reply.message, reply.actions()):
            logger.info(f"{mode.value} reply for {session_id} arrived after the session ended")
            return None

        if reply.should_close:
            if self.store.state.current_intervention is not None:
                self.store.resolve_intervention(
                    Resolution(action="conversation_completed", outcome=ResolutionOutcome.SUCCESS)
                )
            else:
                self.store.close_conversation()
        return reply
