"""Enumerations for botwatch runtime models."""

from enum import Enum


class ConnectionMode(str, Enum):
    """Whether the console is following a live backend or simulating locally."""

    LOCAL = "local"
    REMOTE = "remote"


class BotStatus(str, Enum):
    """Canonical run status of the bot."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class BotAction(str, Enum):
    """Operator commands with a known local simulation."""

    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    SYNC = "sync"


class CheckStatus(str, Enum):
    """Outcome of a single setup check."""

    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"


class LogLevel(str, Enum):
    """Level tags used in formatted console log lines."""

    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    REMOTE = "REMOTE"


class StreamPhase(str, Enum):
    """Lifecycle phase of the streaming session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
