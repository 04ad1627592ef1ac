"""
opforge specification language - typed operation specifications and their Lark grammar

A specification describes the body of an operation without being Python
source. Producers return either a ``Specification`` instance or its text
form; ``synthesize`` turns either into a function that can be installed on
a class.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple
import ast
import json
import logging

from lark import Lark, Transformer, v_args
from lark.exceptions import UnexpectedInput, VisitError

from opforge.context import ResolutionContext
from opforge.errors import SynthesisError, UnresolvedOperationError, fail, fail_with_trace

logger = logging.getLogger(__name__)

# A compiled stage receives (receiver, args, kwargs) and returns a value
Stage = Callable[[Any, Tuple[Any, ...], Dict[str, Any]], Any]

_MISSING: Any = object()

# Exception types a ``Fail`` specification may raise
RAISABLE_ERRORS: Dict[str, type] = {
    "AttributeError": AttributeError,
    "KeyError": KeyError,
    "LookupError": LookupError,
    "NotImplementedError": NotImplementedError,
    "PermissionError": PermissionError,
    "RuntimeError": RuntimeError,
    "TypeError": TypeError,
    "UnresolvedOperationError": UnresolvedOperationError,
    "ValueError": ValueError,
}


def _literal_syntax(value: Any) -> str:
    if value is None:
        return "none"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    raise ValueError(f"{type(value).__name__} value has no specification syntax")


def _format(text: str, context: ResolutionContext) -> str:
    values = context.slots
    values["name"] = context.operation_name
    try:
        return text.format(**values)
    except (KeyError, IndexError) as exc:
        raise SynthesisError(f"Template {text!r} refers to unknown slot {exc}") from exc


@dataclass(frozen=True)
class Specification:
    """Base class for operation specifications"""

    def to_syntax(self) -> str:
        """Convert the specification to its text form"""
        raise NotImplementedError("Must be implemented by subclasses")

    def compile(self, context: ResolutionContext, piped: bool = False) -> Stage:
        """Compile the specification into a stage bound to ``context``"""
        raise NotImplementedError("Must be implemented by subclasses")

    def __str__(self) -> str:
        return self.to_syntax()


@dataclass(frozen=True)
class Constant(Specification):
    """Return a fixed value"""

    value: Any

    def to_syntax(self) -> str:
        return f"const {_literal_syntax(self.value)}"

    def compile(self, context: ResolutionContext, piped: bool = False) -> Stage:
        value = self.value
        return lambda receiver, args, kwargs: value


@dataclass(frozen=True)
class ReadField(Specification):
    """Read an attribute of the receiver, optionally with a default"""

    field: str
    default: Any = _MISSING

    def to_syntax(self) -> str:
        if self.default is _MISSING:
            return f"field {self.field}"
        return f"field {self.field} or {_literal_syntax(self.default)}"

    def compile(self, context: ResolutionContext, piped: bool = False) -> Stage:
        field, default = self.field, self.default

        def _read(receiver, args, kwargs):
            # Plain lookup only; a miss must not trigger operation resolution.
            try:
                return object.__getattribute__(receiver, field)
            except AttributeError:
                if default is _MISSING:
                    raise
                return default

        return _read


@dataclass(frozen=True)
class ReadSlot(Specification):
    """Bake in the value a matcher stored in a context slot"""

    slot: str

    def to_syntax(self) -> str:
        return f"slot {self.slot}"

    def compile(self, context: ResolutionContext, piped: bool = False) -> Stage:
        if self.slot not in context:
            fail(f"Slot '{self.slot}' was never set while resolving '{context.operation_name}'")
        value = context[self.slot]
        return lambda receiver, args, kwargs: value


@dataclass(frozen=True)
class Argument(Specification):
    """Return a positional argument of the call"""

    index: int

    def to_syntax(self) -> str:
        return f"arg {self.index}"

    def compile(self, context: ResolutionContext, piped: bool = False) -> Stage:
        index = self.index
        return lambda receiver, args, kwargs: args[index]


@dataclass(frozen=True)
class Receiver(Specification):
    """Return the receiver of the call"""

    def to_syntax(self) -> str:
        return "self"

    def compile(self, context: ResolutionContext, piped: bool = False) -> Stage:
        return lambda receiver, args, kwargs: receiver


@dataclass(frozen=True)
class OperationName(Specification):
    """Return the resolved operation name"""

    def to_syntax(self) -> str:
        return "name"

    def compile(self, context: ResolutionContext, piped: bool = False) -> Stage:
        name = context.operation_name
        return lambda receiver, args, kwargs: name


@dataclass(frozen=True)
class Template(Specification):
    """Format text with the context slots and ``name``"""

    text: str

    def to_syntax(self) -> str:
        return f"template {_literal_syntax(self.text)}"

    def compile(self, context: ResolutionContext, piped: bool = False) -> Stage:
        rendered = _format(self.text, context)
        return lambda receiver, args, kwargs: rendered


@dataclass(frozen=True)
class Invoke(Specification):
    """Delegate to another operation on the receiver or one of its fields.

    Inside a pipe, an untargeted invoke is applied to the previous value.
    """

    operation: str
    target: Optional[str] = None

    def to_syntax(self) -> str:
        if self.target is None:
            return f"call {self.operation}"
        return f"call {self.operation} on {self.target}"

    def compile(self, context: ResolutionContext, piped: bool = False) -> Stage:
        operation, target = self.operation, self.target
        if target is not None:
            return lambda receiver, args, kwargs: getattr(
                getattr(receiver, target), operation
            )(*args, **kwargs)
        if piped:
            return lambda receiver, args, kwargs: getattr(args[0], operation)()
        return lambda receiver, args, kwargs: getattr(receiver, operation)(
            *args, **kwargs
        )


@dataclass(frozen=True)
class Fail(Specification):
    """Raise an error when called"""

    error: str = "RuntimeError"
    message: Optional[str] = None

    def to_syntax(self) -> str:
        if self.message is None:
            return f"raise {self.error}"
        return f"raise {self.error} {_literal_syntax(self.message)}"

    def compile(self, context: ResolutionContext, piped: bool = False) -> Stage:
        error_type = RAISABLE_ERRORS.get(self.error)
        if error_type is None:
            known = ", ".join(sorted(RAISABLE_ERRORS))
            fail(f"Cannot raise unknown error type '{self.error}' (known: {known})")
        name = context.operation_name

        if error_type is UnresolvedOperationError:
            def _raise_unresolved(receiver, args, kwargs):
                raise UnresolvedOperationError(name, receiver)

            return _raise_unresolved

        if self.message is None:
            message = f"{name} is not supported"
        else:
            message = _format(self.message, context)

        def _raise(receiver, args, kwargs):
            raise error_type(message)

        return _raise


@dataclass(frozen=True)
class Pipe(Specification):
    """Feed the result of each stage into the next"""

    stages: Tuple[Specification, ...]

    def to_syntax(self) -> str:
        return " | ".join(stage.to_syntax() for stage in self.stages)

    def compile(self, context: ResolutionContext, piped: bool = False) -> Stage:
        if not self.stages:
            fail("A pipe needs at least one stage")
        first = self.stages[0].compile(context, piped=piped)
        rest = [stage.compile(context, piped=True) for stage in self.stages[1:]]

        def _run(receiver, args, kwargs):
            value = first(receiver, args, kwargs)
            for stage in rest:
                value = stage(receiver, (value,), {})
            return value

        return _run


# Lark grammar for the specification language
grammar = r"""
    start: pipeline

    pipeline: stage ("|" stage)*

    ?stage: const_stage
          | field_stage
          | slot_stage
          | arg_stage
          | self_stage
          | name_stage
          | template_stage
          | call_stage
          | raise_stage

    const_stage: "const" literal
    field_stage: "field" IDENT ("or" literal)?
    slot_stage: "slot" IDENT
    arg_stage: "arg" INT
    self_stage: "self"
    name_stage: "name"
    template_stage: "template" string
    call_stage: "call" IDENT ("on" IDENT)?
    raise_stage: "raise" IDENT string?

    ?literal: SIGNED_NUMBER -> number
            | string
            | "true" -> true
            | "false" -> false
            | "none" -> none
    string: ESCAPED_STRING

    IDENT: /[a-zA-Z_][a-zA-Z0-9_]*/

    COMMENT: "#" /[^\n]*/

    %import common.ESCAPED_STRING
    %import common.SIGNED_NUMBER
    %import common.INT
    %import common.WS
    %ignore WS
    %ignore COMMENT
"""


class SpecificationTransformer(Transformer):
    """Transform the parse tree into Specification objects"""

    @v_args(inline=True)
    def start(self, pipeline):
        return pipeline

    def pipeline(self, stages):
        if len(stages) == 1:
            return stages[0]
        return Pipe(tuple(stages))

    @v_args(inline=True)
    def const_stage(self, value):
        return Constant(value)

    @v_args(inline=True)
    def field_stage(self, name, default=_MISSING):
        return ReadField(str(name), default)

    @v_args(inline=True)
    def slot_stage(self, name):
        return ReadSlot(str(name))

    @v_args(inline=True)
    def arg_stage(self, index):
        return Argument(int(index))

    def self_stage(self, _):
        return Receiver()

    def name_stage(self, _):
        return OperationName()

    @v_args(inline=True)
    def template_stage(self, text):
        return Template(text)

    @v_args(inline=True)
    def call_stage(self, operation, target=None):
        return Invoke(str(operation), str(target) if target is not None else None)

    @v_args(inline=True)
    def raise_stage(self, error, message=None):
        return Fail(str(error), message)

    @v_args(inline=True)
    def number(self, token):
        text = str(token)
        if any(marker in text for marker in ".eE"):
            return float(text)
        return int(text)

    @v_args(inline=True)
    def string(self, token):
        return ast.literal_eval(str(token))

    def true(self, _):
        return True

    def false(self, _):
        return False

    def none(self, _):
        return None


# Create the parser
parser = Lark(
    grammar,
    start="start",
    parser="lalr",
    transformer=SpecificationTransformer(),
    propagate_positions=True,
    maybe_placeholders=False,
)


def parse_specification_content(content: str) -> Specification:
    """
    Parse a specification from its text form

    Args:
        content: String containing the specification text

    Returns:
        The parsed Specification

    Raises:
        SynthesisError: if the text is not a valid specification
    """
    try:
        result = parser.parse(content)
    except UnexpectedInput as exc:
        fail_with_trace(
            f"Invalid specification {content!r}",
            [("specification", f"line {exc.line}, column {exc.column}")],
        )
    except VisitError as exc:
        raise SynthesisError(f"Invalid specification {content!r}: {exc.orig_exc}") from exc

    if not isinstance(result, Specification):
        raise SynthesisError(f"Expected Specification, got {type(result).__name__}")

    return result


def build_operation(
    stage: Stage, context: ResolutionContext, owner: Optional[type] = None
) -> Callable[..., Any]:
    """Wrap a compiled stage into a function installable on ``owner``"""
    name = context.operation_name

    def operation(self, *args, **kwargs):
        return stage(self, args, kwargs)

    operation.__name__ = name
    if owner is not None:
        operation.__qualname__ = f"{owner.__qualname__}.{name}"
        operation.__module__ = owner.__module__
    return operation


def synthesize(
    produced: Any, context: ResolutionContext, owner: Optional[type] = None
) -> Callable[..., Any]:
    """
    Turn a producer's result into an installable implementation

    Specifications are compiled, callables are accepted as-is and any other
    value is parsed from its string form.
    """
    if isinstance(produced, Specification):
        specification = produced
    elif callable(produced):
        return produced
    else:
        specification = parse_specification_content(str(produced))

    logger.debug(
        "Compiling '%s' from specification: %s",
        context.operation_name,
        _describe(specification),
    )
    stage = specification.compile(context)
    operation = build_operation(stage, context, owner)
    operation.__doc__ = f"Synthesized from: {_describe(specification)}"
    return operation


def _describe(specification: Specification) -> str:
    try:
        return specification.to_syntax()
    except ValueError:
        return repr(specification)

