"""
opforge command line tools
"""

import importlib
import logging
import time
from typing import List

import typer

from opforge.errors import OpForgeError
from opforge.host import DynamicOperations
from opforge.specification import parse_specification_content
from opforge.version import get_version

# Module-level logger
logger = logging.getLogger("opforge.main")

# Create CLI app with Typer
app = typer.Typer(
    name="opforge",
    help="opforge - inspect operation rules and specifications",
    add_completion=False,
)


# ----------------- Helper Functions -----------------


class ElapsedMsFormatter(logging.Formatter):
    """Formatter that prefixes milliseconds since program start, right-aligned."""

    def __init__(self, fmt=None, datefmt=None, *args, **kwargs):
        super().__init__(fmt, datefmt, *args, **kwargs)
        self.start_time = time.monotonic()
        self.width = 8

    def format(self, record):
        elapsed_ms = int((time.monotonic() - self.start_time) * 1000)
        if elapsed_ms < 10**7:
            elapsed = f"[{elapsed_ms:>{self.width}}ms]"
        else:
            elapsed = f"[{elapsed_ms}ms]"
        record.elapsed = elapsed
        return super().format(record)


VERBOSE_LEVEL = 15  # Between INFO (20) and DEBUG (10)
logging.addLevelName(VERBOSE_LEVEL, "VERBOSE")


def setup_logging(debug: bool = False, verbose: bool = False) -> None:
    """Set up logging configuration"""
    if debug:
        log_level = logging.DEBUG
    elif verbose:
        log_level = VERBOSE_LEVEL
    else:
        log_level = logging.INFO
    formatter = ElapsedMsFormatter("%(elapsed)s %(message)s")
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.handlers = []  # Remove any existing handlers
    root.addHandler(handler)
    root.setLevel(log_level)


def load_host_class(path: str) -> type:
    """Import ``module:Class`` and check it composes DynamicOperations"""
    module_name, _, class_name = path.partition(":")
    if not module_name or not class_name:
        logger.error("Expected module:Class, got %s", path)
        raise typer.Exit(code=1)

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        logger.error("Cannot import %s: %s", module_name, exc)
        raise typer.Exit(code=1)

    host = getattr(module, class_name, None)
    if not isinstance(host, type) or not issubclass(host, DynamicOperations):
        logger.error("%s is not a DynamicOperations class", path)
        raise typer.Exit(code=1)
    return host


# ----------------- CLI Commands -----------------


@app.command()
def version() -> None:
    """Show the opforge version"""
    setup_logging(False)
    logger.info("opforge version: %s", get_version())


@app.command("check-spec")
def check_spec(
    text: str = typer.Argument(..., help="Specification text to parse"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose logging"),
) -> None:
    """Parse a specification and print its canonical form"""
    setup_logging(debug, verbose)
    try:
        specification = parse_specification_content(text)
    except OpForgeError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1)
    logger.log(VERBOSE_LEVEL, "Parsed %r", specification)
    typer.echo(specification.to_syntax())


@app.command()
def rules(
    host: str = typer.Argument(..., help="Host class as module:Class"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose logging"),
) -> None:
    """List a class's operation rules in match order"""
    setup_logging(debug, verbose)
    host_class = load_host_class(host)
    registry = host_class.operation_registry()
    own = set(map(id, registry.all()))
    for position, rule in enumerate(registry.effective()):
        origin = "" if id(rule) in own else " (inherited)"
        typer.echo(f"{position}: {rule!r}{origin}")
    installed = registry.installed()
    if installed:
        logger.log(VERBOSE_LEVEL, "Installed so far: %s", ", ".join(installed))


@app.command()
def probe(
    host: str = typer.Argument(..., help="Host class as module:Class"),
    names: List[str] = typer.Argument(..., help="Operation names to check"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose logging"),
) -> None:
    """Report whether operations are present, resolvable or unresolvable"""
    setup_logging(debug, verbose)
    host_class = load_host_class(host)
    try:
        instance = host_class()
    except Exception as exc:
        logger.error("Cannot instantiate %s without arguments: %s", host, exc)
        raise typer.Exit(code=1)

    unresolvable = 0
    for name in names:
        if name in dir(host_class):
            status = "present"
        elif instance.can_resolve(name):
            status = "resolvable"
        else:
            status = "unresolvable"
            unresolvable += 1
        typer.echo(f"{name}: {status}")

    if unresolvable:
        raise typer.Exit(code=2)


if __name__ == "__main__":
    app()
