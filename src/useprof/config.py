"""
Configuration file handling for useprof.
"""

import json
import os
from pathlib import Path
from typing import Any

from . import logger
from .capture import DEFAULT_DURATION, DEFAULT_FREQUENCY, DEFAULT_OUTPUT, CaptureRequest
from .flamegraph import ColorScheme, RenderSpec
from .pipeline import folded_path_for

CONFIG_DIR = ".useprof"
CONFIG_FILE = ".useprofrc"


def _is_testing() -> bool:
    """Check if we're running in a testing environment."""
    return os.environ.get("USEPROF_SUPPRESS_OUTPUT", "").lower() in ("1", "true", "yes")


def _safe_print(message: str) -> None:
    """Print message only if not in testing environment."""
    if not _is_testing():
        logger.console.print(message)


class UseProfConfig:
    """Configuration manager for useprof."""

    def __init__(self) -> None:
        self.config_path = self._get_config_path()

    def _get_config_path(self) -> Path:
        """Get the path to the configuration file."""
        return Path.home() / CONFIG_DIR / CONFIG_FILE

    def load_config(self) -> dict[str, Any]:
        """
        Load configuration from ~/.useprof/.useprofrc file.

        Returns:
            dict[str, Any]: Configuration dictionary. Empty dict if file doesn't exist.
        """
        if not self.config_path.exists():
            return {}

        try:
            with open(self.config_path, encoding="utf-8") as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            _safe_print(
                f"[red]Error: Invalid JSON in configuration file "
                f"{self.config_path}: {e}[/red]"
            )
            return {}
        except OSError as e:  # pragma: no cover
            _safe_print(
                f"[red]Error loading configuration file {self.config_path}: {e}[/red]"
            )
            return {}

        if not isinstance(config, dict):
            _safe_print(
                f"[yellow]Warning: Configuration file {self.config_path} "
                "is not a valid JSON object. Ignoring.[/yellow]"
            )
            return {}
        return config

    def merge_with_args(self, config: dict[str, Any], cmd_args: list[str]) -> list[str]:
        """
        Merge configuration with command line arguments.
        Command line arguments take precedence over configuration file.

        Args:
            config (dict[str, Any]): Configuration dictionary from file
            cmd_args (list[str]): Command line arguments

        Returns:
            list[str]: Merged arguments with config applied first, then command line args
        """
        if not config:
            return cmd_args

        config_args = config.get("args", [])
        if not isinstance(config_args, list):
            _safe_print(
                f"[yellow]Warning: 'args' in configuration file should be a list, "
                f"got {type(config_args).__name__}. Ignoring config args.[/yellow]"
            )
            config_args = []

        # argparse keeps the last occurrence, so command line args go last
        return [str(arg) for arg in config_args] + cmd_args

    def create_example_config(self, overwrite: bool = False) -> bool:
        """Create an example configuration file.

        Returns:
            bool: Whether the file was written.
        """
        if self.config_path.exists() and not overwrite:
            _safe_print(
                f"[yellow]Configuration file already exists at "
                f"{self.config_path}[/yellow]"
            )
            response = input("Do you want to overwrite it? (y/N): ").strip().lower()
            if response not in ("y", "yes"):
                _safe_print("[blue]Configuration file creation cancelled.[/blue]")
                return False

        self.config_path.parent.mkdir(exist_ok=True)

        example_config = {
            "args": [
                # Sampling configuration
                "--duration",
                "10",
                "--frequency",
                "99",
                # Output configuration
                "--output",
                "flamegraph.svg",
                "--width",
                "1200",
                "--color",
                "hot",
            ]
        }

        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(example_config, f, indent=2)

        _safe_print(
            f"[green]Created example configuration file at {self.config_path}[/green]"
        )
        return True


def load_config_if_exists() -> dict[str, Any]:
    """
    Convenience function to load configuration if it exists.

    Returns:
        dict[str, Any]: Configuration dictionary
    """
    return UseProfConfig().load_config()


def merge_config_with_args(cmd_args: list[str]) -> list[str]:
    """
    Convenience function to merge configuration with command line arguments.

    Args:
        cmd_args (list[str]): Command line arguments

    Returns:
        list[str]: Merged arguments
    """
    config_manager = UseProfConfig()
    config = config_manager.load_config()
    return config_manager.merge_with_args(config, cmd_args)


class ProfileConfig:
    """Options of one useprof run, detached from argparse.Namespace."""

    def __init__(
        self,
        *,
        # Capture configuration
        duration: float = DEFAULT_DURATION,
        frequency: int = DEFAULT_FREQUENCY,
        pid: int = 0,
        backend: str | None = None,
        timeout: float | None = None,
        # Output configuration
        output: str = DEFAULT_OUTPUT,
        folded_file: str | None = None,
        # Rendering configuration
        title: str = "Flame Graph",
        color: str = "hot",
        width: int = 1200,
        height: int | None = None,
        # Interface options
        debug: bool = False,
    ):
        """Initialize ProfileConfig with keyword-only arguments.

        Args:
            duration: Seconds to sample for. Truncated to whole seconds, at
                least one. Default: 10.
            frequency: Sampling frequency in Hz. Default: 99.
            pid: Process to profile, 0 samples the whole system. Default: 0.
            backend: Force a capture backend (perf, dtrace or sample) instead
                of probing the platform. Default: None.
            timeout: Overall deadline of the capture in seconds, the external
                tool is killed when it is exceeded. Default: None.
            output: Path of the SVG flame graph. Default: "flamegraph.svg".
            folded_file: Path of the folded stack file. Defaults to the
                output path with a ``.folded`` suffix.
            title: Title of the flame graph. Default: "Flame Graph".
            color: Color scheme, one of hot, cold and mem. Default: "hot".
            width: SVG width in pixels. Default: 1200.
            height: SVG height in pixels, derived from the stack depth when
                None. Default: None.
            debug: Print debug information. Default: False.
        """
        if width <= 0:
            raise ValueError("width must be a positive integer")
        if frequency <= 0:
            raise ValueError("frequency must be a positive integer")
        self.duration = float(duration)
        self.frequency = frequency
        self.pid = pid
        self.backend = backend
        self.timeout = timeout

        self.output = output
        self.folded_file = folded_file or folded_path_for(output)

        self.title = title
        self.color = ColorScheme(color).value
        self.width = width
        self.height = height

        self.debug = debug

    @classmethod
    def from_namespace(cls, args_namespace) -> "ProfileConfig":
        """Create ProfileConfig from argparse.Namespace.

        Args:
            args_namespace: An argparse.Namespace object containing the parsed
                command line arguments.

        Returns:
            A new ProfileConfig instance with values extracted from the
            namespace, using appropriate defaults for missing attributes.
        """
        return cls(
            duration=getattr(args_namespace, "duration", DEFAULT_DURATION),
            frequency=getattr(args_namespace, "frequency", DEFAULT_FREQUENCY),
            pid=getattr(args_namespace, "pid", 0) or 0,
            backend=getattr(args_namespace, "backend", None),
            timeout=getattr(args_namespace, "timeout", None),
            output=getattr(args_namespace, "output", DEFAULT_OUTPUT),
            folded_file=getattr(args_namespace, "folded_file", None),
            title=getattr(args_namespace, "title", "Flame Graph"),
            color=getattr(args_namespace, "color", "hot"),
            width=getattr(args_namespace, "width", 1200),
            height=getattr(args_namespace, "height", None),
            debug=getattr(args_namespace, "debug", False),
        )

    def to_capture_request(self) -> CaptureRequest:
        return CaptureRequest.create(
            duration=self.duration,
            frequency=self.frequency,
            pid=self.pid,
            output=self.output,
        )

    def to_render_spec(self) -> RenderSpec:
        return RenderSpec(
            width=self.width,
            height=self.height,
            title=self.title,
            color_scheme=self.color,
        )
