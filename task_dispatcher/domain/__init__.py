from .errors import (
    DispatchError,
    InvalidScheduleError,
    InvocationFailure,
    TerminalFailure,
    UnknownTaskError,
)

__all__ = [
    "DispatchError",
    "InvalidScheduleError",
    "InvocationFailure",
    "TerminalFailure",
    "UnknownTaskError",
]
