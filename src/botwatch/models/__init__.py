"""botwatch data models."""

from botwatch.models.enums import (
    BotAction,
    BotStatus,
    CheckStatus,
    ConnectionMode,
    LogLevel,
    StreamPhase,
)
from botwatch.models.runtime import (
    SEED_SNAPSHOT,
    ActionResult,
    AppMeta,
    CandidateOutcome,
    ConnectionState,
    HttpResponse,
    SetupCheckResult,
    Snapshot,
    StudioSettings,
    iso_now,
)

__all__ = [
    "BotAction",
    "BotStatus",
    "CheckStatus",
    "ConnectionMode",
    "LogLevel",
    "StreamPhase",
    "ActionResult",
    "AppMeta",
    "CandidateOutcome",
    "ConnectionState",
    "HttpResponse",
    "SEED_SNAPSHOT",
    "SetupCheckResult",
    "Snapshot",
    "StudioSettings",
    "iso_now",
]
