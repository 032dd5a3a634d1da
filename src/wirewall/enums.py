from enum import Enum


class DaemonPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class Operation(str, Enum):
    START = "start"
    CONFIGURE = "configure"
    RELOAD = "reload"
