"""
Operation resolution for unknown attribute lookups.

One resolution attempt moves through these states:

    START -> MATCHING -> SYNTHESIZING -> INSTALLED -> RETRY-DISPATCH
                |
                +-> NO-MATCH

START builds a fresh ``ResolutionContext``. MATCHING walks the receiver
type's rules in order and stops at the first match. SYNTHESIZING asks that
rule for an implementation, which is then INSTALLED on the type. The retry
looks the name up again through normal attribute access, so every later
lookup of that name on that type bypasses the resolver entirely.

NO-MATCH hands over to the caller-supplied fallback, or raises
``UnresolvedOperationError``.
"""

from __future__ import annotations

from typing import Any, Callable, Optional
import inspect
import logging

from opforge.context import ResolutionContext
from opforge.errors import UnresolvedOperationError
from opforge.registry import RuleRegistry, registry_for
from opforge.rule import OperationRule
from opforge.settings import get_settings

logger = logging.getLogger(__name__)

_ABSENT: Any = object()

Fallback = Callable[[str], Any]


def _is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


def _eligible(owner: type, name: str) -> bool:
    if _is_dunder(name) and not get_settings().resolve_dunder_names:
        return False
    # A lookup can also land here when a property or descriptor raised
    # AttributeError; those names belong to the class, not to the rules.
    return inspect.getattr_static(owner, name, _ABSENT) is _ABSENT


def find_rule(
    registry: Optional[RuleRegistry], context: ResolutionContext
) -> Optional[OperationRule]:
    """MATCHING: return the first rule whose matcher accepts ``context``."""
    if registry is None:
        return None
    for position, rule in enumerate(registry.effective()):
        if rule.matches(context):
            logger.debug(
                "'%s' matched %r (position %d)", context.operation_name, rule, position
            )
            return rule
    return None


def materialize(receiver: Any, name: str) -> bool:
    """
    Run START through INSTALLED for ``name`` on the receiver's type

    Returns:
        True when an implementation is installed (now or earlier), False on
        NO-MATCH.

    Raises:
        SynthesisError: if the matched rule cannot produce an implementation
    """
    owner = type(receiver)
    registry = registry_for(owner)

    if registry is not None and registry.is_installed(name):
        return True
    if not _eligible(owner, name):
        return False

    context = ResolutionContext(name, receiver)
    rule = find_rule(registry, context)
    if rule is None:
        logger.debug("No rule for '%s' on %s", name, owner.__qualname__)
        return False

    implementation = rule.produce(context, owner)
    registry.install(name, implementation)

    level = logging.INFO if get_settings().log_resolutions else logging.DEBUG
    logger.log(level, "Installed '%s' on %s", name, owner.__qualname__)
    return True


def resolve(receiver: Any, name: str, fallback: Optional[Fallback] = None) -> Any:
    """
    Resolve ``name`` on ``receiver`` and return the attribute normal lookup now finds

    On NO-MATCH the result of ``fallback(name)`` is returned unchanged; with
    no fallback ``UnresolvedOperationError`` is raised.
    """
    if materialize(receiver, name):
        return getattr(receiver, name)
    if fallback is not None:
        return fallback(name)
    raise UnresolvedOperationError(name, receiver)


def can_resolve(receiver: Any, name: str) -> bool:
    """
    Report whether resolving ``name`` would find a matching rule

    Only the MATCHING phase runs; nothing is synthesized or installed.
    Matchers that write context slots run again on every call, so repeated
    queries are only as idempotent as the matchers themselves.
    """
    owner = type(receiver)
    registry = registry_for(owner)
    if registry is not None and registry.is_installed(name):
        return True
    if not _eligible(owner, name):
        return False
    return find_rule(registry, ResolutionContext(name, receiver)) is not None
