"""
useprof command entry point.
"""

import argparse
import heapq
import sys
from abc import ABC, abstractmethod
from typing import override

from rich.panel import Panel
from rich.table import Table
from rich.traceback import Traceback, install
from rich_argparse import RichHelpFormatter

from . import __version__, logger
from .capture import BACKEND_REGISTRY, CaptureContext, select_backend
from .collapse import StackFormat
from .config import ProfileConfig, UseProfConfig, merge_config_with_args
from .errors import UseProfError
from .flamegraph import ColorScheme
from .pipeline import collapse_file, profile, render_folded_files

console = logger.console
err_console = logger.err_console


class ArgsHandler(ABC):
    def __init__(self, name: str, priority: int = 0) -> None:
        """
        Initialize a new instance with the given name and optional priority.

        Args:
            name (str): The name of the instance.
            priority (int, optional): The priority level. Defaults to 0.
        """
        self.name = name
        self.priority = priority

    @property
    def weight(self) -> int:
        return self.priority

    def __str__(self):  # pragma: no cover
        return f"[bold blue] Handler[name = {self.name}, priority={self.priority}][/bold blue]"  # noqa: E501

    @abstractmethod
    def handle(self, args: argparse.Namespace) -> bool:
        """
        Handle the command.
        Args:
            args (argparse.Namespace): The arguments passed to the command.
        Returns:
            bool: Whether the command be handled.
        """
        pass  # pragma: no cover

    @classmethod
    @abstractmethod
    def build(cls) -> "ArgsHandler":
        pass  # pragma: no cover

    def __lt__(self, other: "ArgsHandler") -> bool:
        return self.weight > other.weight  # big heap


handlers: list[ArgsHandler] = []


def _positive_int(value: str) -> int:
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return ivalue


def _non_negative_int(value: str) -> int:
    ivalue = int(value)
    if ivalue < 0:
        raise argparse.ArgumentTypeError(f"{value} is a negative integer")
    return ivalue


def _load_config(args: argparse.Namespace) -> ProfileConfig:
    """Build the run options, rejecting values argparse cannot check alone."""
    try:
        config = ProfileConfig.from_namespace(args)
        config.to_capture_request()
        config.to_render_spec()
    except ValueError as e:
        raise UseProfError(f"invalid option: {e}") from e
    return config


def register_handler(handler: type[ArgsHandler]) -> type[ArgsHandler]:
    """Register a handler class to be used in the application.

    Args:
        handler (type[ArgsHandler]): A handler class that must implement the ArgsHandler interface.
    """  # noqa: E501
    heapq.heappush(handlers, handler.build())
    return handler


@register_handler
class CollapseHandler(ArgsHandler):
    """
    Folding a saved raw profiler dump into collapsed stacks.
    """

    @classmethod
    def build(cls) -> ArgsHandler:
        return cls()

    def __init__(self, priority: int = 2048) -> None:
        super().__init__("CollapseHandler", priority=priority)

    @override
    def handle(self, args: argparse.Namespace) -> bool:
        if args.collapse is None:
            return False
        if len(args.input) != 1:
            raise UseProfError("--collapse takes exactly one raw dump file")
        config = _load_config(args)
        count = collapse_file(args.input[0], args.collapse, config.folded_file)
        logger.log_success_panel(
            f"Folded {count} distinct stacks from `{args.input[0]}` "
            f"into `{config.folded_file}`"
        )
        return True


@register_handler
class FoldedRenderHandler(ArgsHandler):
    """
    Generating a flame graph from saved folded stacks.
    """

    @classmethod
    def build(cls) -> ArgsHandler:
        return cls()

    def __init__(self, priority: int = 1024) -> None:
        super().__init__("FoldedRenderHandler", priority=priority)

    @override
    def handle(self, args: argparse.Namespace) -> bool:
        if not args.parse:
            return False
        if not args.input:
            raise UseProfError("--parse needs at least one folded stack file")
        config = _load_config(args)
        samples = render_folded_files(args.input, config.output, config.to_render_spec())
        logger.log_success_panel(
            f"Generated a flamegraph svg file `{config.output}` ({samples} samples) "
            f"from the folded stack file(s) `{', '.join(args.input)}`, "
            f"please check it out via `open {config.output}`"
        )
        return True


@register_handler
class CaptureHandler(ArgsHandler):
    """
    Sampling the system (or one process) and rendering the result.
    """

    @classmethod
    def build(cls) -> ArgsHandler:
        return cls()

    def __init__(self, priority: int = 512) -> None:
        super().__init__("CaptureHandler", priority=priority)

    @override
    def handle(self, args: argparse.Namespace) -> bool:
        if args.input:
            return False
        config = _load_config(args)
        request = config.to_capture_request()
        spec = config.to_render_spec()
        backend = select_backend(request, name=config.backend)
        if backend.name == "sample":
            logger.log_warning_panel(
                "dtrace is not available, falling back to `sample`. Its call "
                "trees are folded like dtrace output, frame order may be approximate."
            )

        scope = "system wide" if request.system_wide else f"pid {request.pid}"
        logger.log_info(
            f"[bold cyan]Sampling {scope} with {backend.name} at "
            f"{request.frequency} Hz for {request.seconds}s...[/bold cyan]"
        )
        ctx = CaptureContext(timeout=config.timeout)
        with ctx.bind_signals():
            result = profile(
                request, spec, ctx=ctx, backend=backend, folded_output=config.folded_file
            )
        logger.log_success_panel(
            f"Captured {result.sample_count} samples with {result.backend} "
            f"in {result.elapsed:.1f}s.\n"
            f"Folded stacks: `{result.folded_path}`\n"
            f"Flame graph: `{result.svg_path}`, "
            f"please check it out via `open {result.svg_path}`"
        )
        return True


def dispatch(args: argparse.Namespace) -> None:
    for handler in sorted(handlers):
        if handler.handle(args):
            return

    raise UseProfError(
        f"input file(s) `{', '.join(args.input)}` need --parse or --collapse"
    )


def useprof_help(parser: argparse.ArgumentParser):
    parser.print_help()
    table = Table(title="Capture Backends", show_lines=True)

    table.add_column("Backend", style="cyan", justify="right")
    table.add_column("Platform", style="green")
    table.add_column("Scope", style="magenta")

    table.add_row("perf", "linux", "system wide or --pid")
    table.add_row("dtrace", "darwin", "system wide or --pid, needs root")
    table.add_row("sample", "darwin", "--pid only, used when dtrace is missing")
    console.print()
    console.print(table)


def _pre_checks(args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
    if args.help:
        useprof_help(parser)
        sys.exit(0)

    if args.version:
        console.print(f"useprof version {__version__}")
        sys.exit(0)

    if args.create_config:
        UseProfConfig().create_example_config()
        sys.exit(0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="useprof",
        description="useprof samples CPU stacks with the platform profiler "
        "and renders them as a flame graph.",
        add_help=False,
        formatter_class=RichHelpFormatter,
    )
    parser.add_argument(
        "-h", "--help", action="store_true", help="Show this help message and exit."
    )
    parser.add_argument(
        "-v", "--version", action="store_true", help="Show version information and exit."
    )
    parser.add_argument(
        "input",
        nargs="*",
        help="Folded stack file(s) with --parse, or one raw dump with --collapse.",
    )
    parser.add_argument(
        "-p",
        "--parse",
        action="store_true",
        help="Parse folded stack data to generate a flamegraph svg file, "
        "such as `useprof -p flamegraph.folded`. Multiple input files are merged "
        "into a single SVG file.",
    )
    parser.add_argument(
        "--collapse",
        choices=[fmt.value for fmt in StackFormat],
        help="Fold a saved raw dump (`perf script` or `dtrace` output) into "
        "--folded-file instead of capturing.",
    )
    parser.add_argument(
        "-d",
        "--duration",
        type=float,
        default=10,
        help="Sampling duration in seconds (default: 10). Truncated to whole "
        "seconds, at least 1.",
    )
    parser.add_argument(
        "-F",
        "--frequency",
        type=_positive_int,
        default=99,
        help="Sampling frequency in Hz (default: 99).",
    )
    parser.add_argument(
        "--pid",
        type=_non_negative_int,
        default=0,
        help="Profile only this process (default: 0, the whole system).",
    )
    parser.add_argument(
        "--backend",
        choices=list(BACKEND_REGISTRY),
        help="Force a capture backend instead of probing the platform.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Abort the capture when it runs longer than this many seconds.",
    )
    parser.add_argument(
        "-o",
        "--output",
        default="flamegraph.svg",
        help="Output file (default: flamegraph.svg).",
    )
    parser.add_argument(
        "--folded-file",
        type=str,
        default=None,
        help="Where to save the folded stacks (default: the output path with a "
        ".folded suffix).",
    )
    parser.add_argument("--title", default="Flame Graph", help="Title text.")
    parser.add_argument(
        "--color",
        choices=[scheme.value for scheme in ColorScheme],
        default="hot",
        help="Color scheme of the frames (default: hot).",
    )
    parser.add_argument(
        "--width",
        type=_positive_int,
        default=1200,
        help="SVG width in pixels (default: 1200).",
    )
    parser.add_argument(
        "--height",
        type=_positive_int,
        default=None,
        help="SVG height in pixels (default: derived from the stack depth).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (default: False). Print some debug information.",
    )
    parser.add_argument(
        "--disable-traceback",
        action="store_true",
        help="Disable the rich(colorful) traceback and use the default traceback.",
    )
    parser.add_argument(
        "--create-config",
        action="store_true",
        help="Create an example configuration file at ~/.useprof/.useprofrc and exit.",
    )
    return parser


def main():
    arguments = merge_config_with_args(sys.argv[1:])

    parser = build_parser()
    args = parser.parse_args(arguments)
    _pre_checks(args, parser)
    if args.debug:
        logger.enable_debug()
    if not args.disable_traceback:
        install()
    try:
        dispatch(args)
    except UseProfError as e:
        logger.log_error_panel(str(e))
        sys.exit(e.exit_code)
    except Exception as e:
        if not args.disable_traceback:
            console.print(
                Panel(
                    "[bold red]The following traceback may be useful for debugging.[/bold red]",  # noqa: E501
                    title="[bold yellow]⚠ Error Traceback[/bold yellow]",
                    style="red",
                    border_style="bright_red",
                )
            )
            tb = Traceback()
            err_console.print(tb)
            err_console.print(
                "[bold cyan]You can also try running with --disable-traceback for a simpler output.[/bold cyan]"  # noqa: E501
            )
        else:
            print(str(e), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
