"""Per-attempt resolution context shared by matchers and producers."""

from __future__ import annotations

from typing import Any, Iterator
import copy
import weakref


class _Unset:
    """Sentinel returned for slots that were never written."""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()

_RESERVED = frozenset({"operation_name", "original_receiver"})
_PRIVATE = frozenset({"_operation_name", "_receiver_ref", "_slots"})


class ResolutionContext:
    """Scratchpad for one resolution attempt.

    Exposes the operation name under resolution, the receiver that triggered
    it, and an open map of named slots. Any slot can be written as an
    attribute or an item; reading a slot that was never written yields
    ``UNSET``. A value stored while a matcher runs is visible to the producer
    of the same attempt.

    The receiver is held weakly whenever its type allows it.
    """

    __slots__ = ("_operation_name", "_receiver_ref", "_slots")

    def __init__(self, operation_name: str, original_receiver: Any = None) -> None:
        object.__setattr__(self, "_operation_name", str(operation_name))
        object.__setattr__(self, "_receiver_ref", _reference(original_receiver))
        object.__setattr__(self, "_slots", {})

    @property
    def operation_name(self) -> str:
        return self._operation_name

    @property
    def original_receiver(self) -> Any:
        return self._receiver_ref()

    def __getattr__(self, name: str) -> Any:
        if name in _PRIVATE or (name.startswith("__") and name.endswith("__")):
            raise AttributeError(name)
        return self._slots.get(name, UNSET)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _RESERVED or name in _PRIVATE:
            raise AttributeError(f"'{name}' is read-only on a resolution context")
        self._slots[name] = value

    def __delattr__(self, name: str) -> None:
        self._slots.pop(name, None)

    def __getitem__(self, name: str) -> Any:
        return self._slots[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.__setattr__(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self._slots

    def __iter__(self) -> Iterator[str]:
        return iter(self._slots)

    def get(self, name: str, default: Any = None) -> Any:
        return self._slots.get(name, default)

    def __copy__(self) -> "ResolutionContext":
        duplicate = self._duplicate()
        duplicate._slots.update(self._slots)
        return duplicate

    def __deepcopy__(self, memo: dict) -> "ResolutionContext":
        duplicate = self._duplicate()
        memo[id(self)] = duplicate
        duplicate._slots.update(copy.deepcopy(self._slots, memo))
        return duplicate

    def _duplicate(self) -> "ResolutionContext":
        # Same name and receiver reference, empty slots.
        duplicate = object.__new__(type(self))
        object.__setattr__(duplicate, "_operation_name", self._operation_name)
        object.__setattr__(duplicate, "_receiver_ref", self._receiver_ref)
        object.__setattr__(duplicate, "_slots", {})
        return duplicate

    @property
    def slots(self) -> dict[str, Any]:
        """Copy of the slots written so far."""
        return dict(self._slots)

    def __repr__(self) -> str:
        return (
            f"ResolutionContext(operation_name={self._operation_name!r}, "
            f"slots={sorted(self._slots)!r})"
        )


def _reference(receiver: Any):
    if receiver is None:
        return lambda: None
    try:
        return weakref.ref(receiver)
    except TypeError:
        # ints, strs and __slots__ classes without __weakref__
        return lambda: receiver
