"""Operation rules: a matcher paired with an implementation producer."""

from __future__ import annotations

from typing import Any, Callable, Optional, Pattern, Union
import re

from pydantic import BaseModel, ConfigDict, ValidationError

from opforge.context import UNSET, ResolutionContext
from opforge.errors import ConfigurationError, SynthesisError
from opforge.specification import synthesize

Matcher = Callable[[ResolutionContext], Any]
Producer = Callable[[ResolutionContext], Any]
Implementation = Callable[..., Any]


class RuleConfig(BaseModel):
    """Mutable configuration a rule is built from.

    Rule authors may set extra fields; they are carried onto the rule and
    readable as attributes there.
    """

    model_config = ConfigDict(validate_assignment=True, extra="allow")

    matcher: Optional[Callable[..., Any]] = None
    implementation: Optional[Callable[..., Any]] = None
    specification_producer: Optional[Callable[..., Any]] = None
    description: str = ""


def _config_error(exc: ValidationError) -> ConfigurationError:
    problems = [
        (".".join(str(part) for part in error["loc"]) or "rule", error["msg"])
        for error in exc.errors()
    ]
    return ConfigurationError("Invalid operation rule configuration", problems)


def _validate(config: RuleConfig) -> None:
    if config.matcher is None:
        raise ConfigurationError("matcher must be given")
    if (config.implementation is None) == (config.specification_producer is None):
        raise ConfigurationError(
            "exactly one of implementation or specification_producer must be given"
        )


class OperationRule:
    """Immutable pairing of a matcher and an implementation producer.

    Build one from keyword fields, from a ``RuleConfig``, or with
    ``OperationRule.configure(block)`` where ``block`` sets the fields on a
    fresh config. Exactly one of ``implementation`` or
    ``specification_producer`` must be set.
    """

    def __init__(self, config: Optional[RuleConfig] = None, /, **fields: Any) -> None:
        if config is None:
            try:
                config = RuleConfig(**fields)
            except ValidationError as exc:
                raise _config_error(exc) from exc
        elif fields:
            raise ConfigurationError("pass either a RuleConfig or keyword fields, not both")

        _validate(config)
        object.__setattr__(self, "_matcher", config.matcher)
        object.__setattr__(self, "_implementation", config.implementation)
        object.__setattr__(self, "_producer", config.specification_producer)
        object.__setattr__(self, "_description", config.description)
        object.__setattr__(self, "_extras", dict(config.model_extra or {}))

    @classmethod
    def configure(cls, block: Callable[[RuleConfig], Any]) -> "OperationRule":
        """Build a rule from a block that fills in a ``RuleConfig``."""
        config = RuleConfig()
        try:
            block(config)
        except ValidationError as exc:
            raise _config_error(exc) from exc
        return cls(config)

    @property
    def matcher(self) -> Matcher:
        return self._matcher

    @property
    def implementation(self) -> Optional[Implementation]:
        return self._implementation

    @property
    def specification_producer(self) -> Optional[Producer]:
        return self._producer

    @property
    def description(self) -> str:
        return self._description

    @property
    def extras(self) -> dict[str, Any]:
        return dict(self._extras)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__") and name.endswith("__"):
            raise AttributeError(name)
        return self._extras.get(name, UNSET)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("operation rules are immutable once built")

    def matches(self, context: ResolutionContext) -> bool:
        """Evaluate the matcher; slots it writes stay on ``context``."""
        return bool(self._matcher(context))

    def produce(self, context: ResolutionContext, owner: Optional[type] = None) -> Implementation:
        """
        Return the implementation for the operation named in ``context``

        A direct implementation is returned unchanged; otherwise the
        specification producer runs with the same context and its result is
        synthesized into a function for ``owner``.
        """
        if self._implementation is not None:
            return self._implementation

        try:
            produced = self._producer(context)
            return synthesize(produced, context, owner)
        except SynthesisError as exc:
            raise SynthesisError(exc.msg, exc.trace + [self._trace_entry(context)]) from exc
        except Exception as exc:
            raise SynthesisError(
                f"Specification producer failed: {exc}", [self._trace_entry(context)]
            ) from exc

    def _trace_entry(self, context: ResolutionContext) -> tuple[str, str]:
        label = self._description or getattr(self._producer, "__name__", "rule")
        return (f"rule {label}", f"operation '{context.operation_name}'")

    def __repr__(self) -> str:
        kind = "implementation" if self._implementation is not None else "specification"
        if self._description:
            return f"OperationRule({self._description!r}, {kind})"
        return f"OperationRule({kind})"


def pattern_matcher(pattern: Union[str, Pattern[str]], slot: str = "match") -> Matcher:
    """
    Build a matcher that full-matches the operation name against ``pattern``

    On a match the ``re.Match`` is stored in ``slot`` and every named group
    is stored in a slot of the same name, for the producer to read.
    """
    compiled = re.compile(pattern)

    def _match(context: ResolutionContext) -> bool:
        found = compiled.fullmatch(context.operation_name)
        if found is None:
            return False
        context[slot] = found
        for group, value in found.groupdict().items():
            context[group] = value
        return True

    _match.__name__ = f"matches_{compiled.pattern}"
    return _match
