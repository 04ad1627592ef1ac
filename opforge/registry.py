"""Per-type rule registries and the operations installed from them."""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterator, Optional
import logging
import threading

from opforge.errors import ConfigurationError
from opforge.rule import Implementation, OperationRule

logger = logging.getLogger(__name__)

REGISTRY_ATTRIBUTE = "_operation_registry"


class RuleRegistry:
    """Ordered, append-only rule list owned by a single host type.

    Iteration order is match priority. Parent registries are only consulted
    when the owning type opted into them; their rules come after the
    owner's own rules.
    """

    def __init__(self, owner: type, parents: tuple["RuleRegistry", ...] = ()) -> None:
        self.owner = owner
        self.parents = parents
        self._rules: list[OperationRule] = []
        self._installed: OrderedDict[str, Implementation] = OrderedDict()
        self._lock = threading.RLock()

    def append(self, rule: OperationRule) -> OperationRule:
        if not isinstance(rule, OperationRule):
            raise ConfigurationError(
                f"Expected OperationRule, got {type(rule).__name__}"
            )
        self._rules.append(rule)
        logger.debug(
            "Registered %r on %s at position %d",
            rule,
            self.owner.__qualname__,
            len(self._rules) - 1,
        )
        return rule

    def all(self) -> tuple[OperationRule, ...]:
        """This type's own rules in insertion order."""
        return tuple(self._rules)

    def effective(self) -> tuple[OperationRule, ...]:
        """Own rules followed by the rules of opted-in parents."""
        ordered: list[OperationRule] = list(self._rules)
        seen = {id(rule) for rule in ordered}
        for parent in self.parents:
            for rule in parent.effective():
                if id(rule) not in seen:
                    seen.add(id(rule))
                    ordered.append(rule)
        return tuple(ordered)

    def __iter__(self) -> Iterator[OperationRule]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._rules)

    def install(self, name: str, implementation: Implementation) -> Implementation:
        """
        Attach ``implementation`` to the owner under ``name``, first writer wins

        If the name was installed meanwhile, the existing implementation is
        kept and returned.
        """
        with self._lock:
            if self.is_installed(name):
                logger.debug(
                    "'%s' already installed on %s, adopting it",
                    name,
                    self.owner.__qualname__,
                )
                return self._installed[name]
            setattr(self.owner, name, implementation)
            self._installed[name] = implementation
            return implementation

    def is_installed(self, name: str) -> bool:
        """True when resolution installed ``name`` and it is still on the owner."""
        return name in self._installed and name in vars(self.owner)

    def installed(self) -> tuple[str, ...]:
        """Names installed on the owner by resolution, oldest first."""
        return tuple(self._installed)

    def __repr__(self) -> str:
        return f"RuleRegistry({self.owner.__qualname__}, rules={len(self._rules)})"


def registry_for(cls: type) -> Optional[RuleRegistry]:
    """Return the registry owned by ``cls`` itself, not one inherited from a base."""
    registry = cls.__dict__.get(REGISTRY_ATTRIBUTE)
    if isinstance(registry, RuleRegistry):
        return registry
    return None
