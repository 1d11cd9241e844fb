
from .claims import ClaimDecision, ClaimRegistry
from .cleanup import PendingCleanup, SpamCleanupScheduler
from .context import EngineContext, EnginePolicy
from .moderation import ModerationEngine, ModerationOutcome
from .router import EventRouter, build_router
from .transport import ChatRef, ChatTransport, InboundMessage, MessageRef
from .verification import (
    MeritQueryOutcome,
    RecheckOutcome,
    RevokeOutcome,
    VerificationEngine,
    VerifyOutcome,
)

__all__ = [
    "ChatRef",
    "ChatTransport",
    "ClaimDecision",
    "ClaimRegistry",
    "EngineContext",
    "EnginePolicy",
    "EventRouter",
    "InboundMessage",
    "MeritQueryOutcome",
    "MessageRef",
    "ModerationEngine",
    "ModerationOutcome",
    "PendingCleanup",
    "RecheckOutcome",
    "RevokeOutcome",
    "SpamCleanupScheduler",
    "VerificationEngine",
    "VerifyOutcome",
    "build_router",
]
