"""
opforge error module
"""

from typing import Any, List, Optional, Tuple

# Type alias for trace entries: (identifier, position)
Trace = List[Tuple[str, str]]


class OpForgeError(Exception):
    """Base exception for opforge with optional trace support"""

    def __init__(self, msg: str, trace: Optional[Trace] = None):
        self.msg = msg
        self.trace = list(trace or [])
        super().__init__(self.format_message())

    def format_message(self) -> str:
        if not self.trace:
            return self.msg

        trace_str = ""
        for identifier, position in self.trace:
            trace_str += f"\n{identifier} at {position}"

        return f"{self.msg}{trace_str}"


class ConfigurationError(OpForgeError, ValueError):
    """Raised when a rule is constructed with missing or conflicting fields."""


class SynthesisError(OpForgeError):
    """Raised when a matched rule cannot produce a usable implementation."""


class UnresolvedOperationError(OpForgeError, AttributeError):
    """Raised when no rule matches and no fallback lookup exists.

    Subclasses ``AttributeError`` so callers cannot tell it apart from a
    statically absent attribute (``hasattr`` and ``getattr`` defaults work).
    """

    def __init__(self, operation_name: str, receiver: Any = None):
        self.operation_name = operation_name
        type_name = type(receiver).__name__ if receiver is not None else "object"
        OpForgeError.__init__(
            self, f"'{type_name}' object has no attribute '{operation_name}'"
        )
        # AttributeError keeps these for "did you mean" suggestions
        self.name = operation_name
        self.obj = receiver


def fail(msg: str) -> None:
    """Raise a synthesis error with a message"""
    raise SynthesisError(msg, [])


def fail_with_trace(msg: str, trace: Trace) -> None:
    """Raise a synthesis error with a message and trace"""
    raise SynthesisError(msg, trace)
