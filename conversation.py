"""
Conversation State & Trimming
=============================

Role-tagged message history for one generation run. The history grows as
days are generated, but every model call only sees a trimmed view:

    1. system instruction (full for the first days, compact afterwards)
    2. the most recent "previously generated meals" digest
    3. the most recent success acknowledgment pair
    4. the most recent error message for the current day
    5. the current request

Everything else stays in the log but is never sent.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from meal_models import Meal
from prompts import (
    build_accepted_meals_digest,
    build_error_message,
    build_success_acknowledgment,
    system_prompt_for_day,
)

# Message kinds
DIGEST = "digest"
ERROR = "error"
SUCCESS = "success"
ACK = "ack"
REQUEST = "request"
RESPONSE = "response"


@dataclass(frozen=True)
class Message:
    role: str       # "user" or "assistant"
    content: str
    kind: str
    day: Optional[int] = None

    def as_chat(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ConversationState:
    """Message log owned by a single orchestrator run."""
    full_prompt_days: int = 2
    messages: List[Message] = field(default_factory=list)

    def append(self, role: str, content: str, kind: str, day: Optional[int] = None) -> Message:
        message = Message(role=role, content=content, kind=kind, day=day)
        self.messages.append(message)
        return message

    def record_digest(self, accepted_meals: Sequence[Meal]) -> None:
        digest = build_accepted_meals_digest(accepted_meals)
        if digest:
            self.append("user", digest, DIGEST)

    def record_request(self, day: int, prompt: str) -> None:
        self.append("user", prompt, REQUEST, day)

    def record_response(self, day: int, text: str) -> None:
        self.append("assistant", text, RESPONSE, day)

    def record_error(self, day: int, attempt: int, reason: str) -> None:
        self.append("user", build_error_message(day, attempt, reason), ERROR, day)

    def record_success(self, day: int, meals: Sequence[Meal]) -> None:
        assistant, user = build_success_acknowledgment(day, meals)
        self.append("assistant", assistant, SUCCESS, day)
        self.append("user", user, ACK, day)

    def _latest(self, kind: str, day: Optional[int] = None) -> Optional[Message]:
        for message in reversed(self.messages):
            if message.kind == kind and (day is None or message.day == day):
                return message
        return None

    def trimmed_for_day(self, day: int, request: str) -> Tuple[str, List[Dict[str, str]]]:
        """
        Build the context for one model call.

        Args:
            day: Day being generated
            request: The prompt for this attempt

        Returns:
            (system instruction, ordered role/content messages)
        """
        kept: List[Message] = []

        digest = self._latest(DIGEST)
        if digest:
            kept.append(digest)

        success = self._latest(SUCCESS)
        if success:
            kept.append(success)
            ack = self._latest(ACK, success.day)
            if ack:
                kept.append(ack)

        error = self._latest(ERROR, day)
        if error:
            kept.append(error)

        chat = [m.as_chat() for m in kept]
        chat.append({"role": "user", "content": request})
        return system_prompt_for_day(day, self.full_prompt_days), chat
