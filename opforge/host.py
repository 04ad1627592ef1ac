"""Composition point: classes opt into operation resolution by subclassing."""

from __future__ import annotations

from typing import Any, Callable, Optional
import inspect

from opforge.registry import REGISTRY_ATTRIBUTE, RuleRegistry, registry_for
from opforge.resolver import can_resolve, resolve
from opforge.rule import Matcher, OperationRule, RuleConfig

_ABSENT: Any = object()


def _attach_registry(cls: type, inherit_rules: bool) -> RuleRegistry:
    parents: tuple[RuleRegistry, ...] = ()
    if inherit_rules:
        parents = tuple(
            registry
            for registry in (registry_for(base) for base in cls.__bases__)
            if registry is not None
        )
    registry = RuleRegistry(cls, parents)
    setattr(cls, REGISTRY_ATTRIBUTE, registry)
    return registry


class DynamicOperations:
    """Mixin that resolves unknown operations through registered rules.

    Each subclass owns its own rule registry; a subclass sees its parents'
    rules only when declared with ``inherit_rules=True``::

        class Record(DynamicOperations):
            pass

        Record.add_operation_rule(
            matcher=pattern_matcher(r"get_(?P<field>\\w+)"),
            specification_producer=lambda ctx: f"field {ctx.field} or none",
        )

    List the mixin before any base class that defines its own
    ``__getattr__``; that base then serves as the fallback for names no
    rule matches.
    """

    def __init_subclass__(cls, inherit_rules: bool = False, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        _attach_registry(cls, inherit_rules)

    @classmethod
    def add_operation_rule(
        cls,
        rule: Optional[OperationRule] = None,
        /,
        *,
        configure: Optional[Callable[[RuleConfig], Any]] = None,
        **fields: Any,
    ) -> OperationRule:
        """
        Append a rule to this class's registry

        Pass a built ``OperationRule``, a ``configure`` block that fills in a
        ``RuleConfig``, or the rule fields as keywords.
        """
        if rule is None:
            if configure is not None:
                rule = OperationRule.configure(configure)
                if fields:
                    raise TypeError("configure cannot be combined with keyword fields")
            else:
                rule = OperationRule(**fields)
        elif configure is not None or fields:
            raise TypeError("pass either a rule, a configure block or keyword fields")
        return cls.operation_registry().append(rule)

    @classmethod
    def operation_rule(
        cls, matcher: Matcher, description: str = ""
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator registering a function as the implementation for matching names."""

        def _register(implementation: Callable[..., Any]) -> Callable[..., Any]:
            cls.add_operation_rule(
                matcher=matcher,
                implementation=implementation,
                description=description or implementation.__name__,
            )
            return implementation

        return _register

    @classmethod
    def operation_rules(cls) -> tuple[OperationRule, ...]:
        return cls.operation_registry().all()

    @classmethod
    def operation_registry(cls) -> RuleRegistry:
        registry = registry_for(cls)
        if registry is None:
            registry = _attach_registry(cls, inherit_rules=False)
        return registry

    def __getattr__(self, name: str) -> Any:
        fallback = getattr(super(DynamicOperations, self), "__getattr__", None)
        return resolve(self, name, fallback)

    def can_resolve(self, name: str) -> bool:
        """True when a rule would resolve ``name``; nothing is installed."""
        return can_resolve(self, name)

    def responds_to(self, name: str) -> bool:
        """True for attributes already present or resolvable by a rule."""
        if inspect.getattr_static(self, name, _ABSENT) is not _ABSENT:
            return True
        return can_resolve(self, name)

    def invoke_operation(self, name: str, *args: Any, **kwargs: Any) -> Any:
        """Look ``name`` up, resolving it if needed, and call it."""
        return getattr(self, name)(*args, **kwargs)
