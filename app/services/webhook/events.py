"""Provider event types as a closed set with an explicit unrecognized variant.

The provider's ``event_type`` is an open string enum. classify_event maps
known strings to an EventKind and everything else to
EventKind.UNRECOGNIZED, keeping the raw string for logging, so new
provider event types are acknowledged and ignored instead of failing.
"""

from dataclasses import dataclass
from enum import Enum


class EventKind(str, Enum):
    START = "start"
    END = "end"
    TRANSCRIPTION = "transcription"
    RECORDING = "recording"
    PERCEPTION = "perception"
    UTTERANCE = "utterance"
    TOOL_CALL = "tool_call"
    SPEAKING_STATE = "speaking_state"
    LIVE_INTERACTION = "live_interaction"
    UNRECOGNIZED = "unrecognized"


_EVENT_KINDS: dict[str, EventKind] = {
    "system.replica_joined": EventKind.START,
    "system.shutdown": EventKind.END,
    "application.transcription_ready": EventKind.TRANSCRIPTION,
    "application.recording_ready": EventKind.RECORDING,
    "application.perception_analysis": EventKind.PERCEPTION,
    "conversation.perception_analysis": EventKind.PERCEPTION,
    "conversation.perception_tool_call": EventKind.PERCEPTION,
    "conversation.utterance": EventKind.UTTERANCE,
    "conversation.tool_call": EventKind.TOOL_CALL,
    "conversation.replica.started_speaking": EventKind.SPEAKING_STATE,
    "conversation.replica.stopped_speaking": EventKind.SPEAKING_STATE,
    "conversation.user.started_speaking": EventKind.SPEAKING_STATE,
    "conversation.user.stopped_speaking": EventKind.SPEAKING_STATE,
    "conversation.echo": EventKind.LIVE_INTERACTION,
    "conversation.respond": EventKind.LIVE_INTERACTION,
    "conversation.sensitivity": EventKind.LIVE_INTERACTION,
    "conversation.interrupt": EventKind.LIVE_INTERACTION,
    "conversation.replica_interrupted": EventKind.LIVE_INTERACTION,
    "conversation.overwrite_context": EventKind.LIVE_INTERACTION,
}


@dataclass(frozen=True)
class ProviderEvent:
    """A classified event type. ``raw`` is always the string the provider sent."""

    kind: EventKind
    raw: str

    @property
    def is_recognized(self) -> bool:
        return self.kind is not EventKind.UNRECOGNIZED


def classify_event(event_type: str) -> ProviderEvent:
    """Exact-match classification; no prefix or case folding."""
    return ProviderEvent(
        kind=_EVENT_KINDS.get(event_type, EventKind.UNRECOGNIZED),
        raw=event_type,
    )
