"""
opforge - operations forged on first use.

A class that subclasses ``DynamicOperations`` registers ordered rules. When an
instance is asked for an attribute its class does not define, the first
rule whose matcher accepts the name produces an implementation, which is
installed on the class and returned through normal lookup.
"""

from opforge.context import UNSET, ResolutionContext
from opforge.errors import (
    ConfigurationError,
    OpForgeError,
    SynthesisError,
    UnresolvedOperationError,
)
from opforge.host import DynamicOperations
from opforge.registry import RuleRegistry
from opforge.rule import OperationRule, RuleConfig, pattern_matcher
from opforge.specification import parse_specification_content
from opforge.version import __version__

__all__ = [
    "UNSET",
    "ConfigurationError",
    "DynamicOperations",
    "OpForgeError",
    "OperationRule",
    "ResolutionContext",
    "RuleConfig",
    "RuleRegistry",
    "SynthesisError",
    "UnresolvedOperationError",
    "parse_specification_content",
    "pattern_matcher",
    "__version__",
]
