"""CPU flame graphs from OS level sampling profilers."""

from .capture import (
    BACKEND_REGISTRY,
    CaptureBackend,
    CaptureContext,
    CaptureOutcome,
    CaptureRequest,
    DtraceBackend,
    PerfBackend,
    SampleBackend,
    capture,
    select_backend,
)
from .collapse import FoldedStacks, StackFormat, collapse, collapse_dtrace, collapse_perf
from .errors import (
    CaptureCancelled,
    CaptureFailed,
    EmptyInput,
    EmptyTree,
    ToolUnavailable,
    UseProfError,
)
from .flamegraph import ColorScheme, FlameGraph, FrameBox, RenderSpec, render_svg
from .pipeline import (
    ProfileResult,
    collapse_file,
    fold,
    profile,
    render,
    render_folded_files,
)
from .tree import FlameNode, build_tree

__all__: list[str] = [
    "BACKEND_REGISTRY",
    "CaptureBackend",
    "CaptureCancelled",
    "CaptureContext",
    "CaptureFailed",
    "CaptureOutcome",
    "CaptureRequest",
    "ColorScheme",
    "DtraceBackend",
    "EmptyInput",
    "EmptyTree",
    "FlameGraph",
    "FlameNode",
    "FoldedStacks",
    "FrameBox",
    "PerfBackend",
    "ProfileResult",
    "RenderSpec",
    "SampleBackend",
    "StackFormat",
    "ToolUnavailable",
    "UseProfError",
    "__version__",
    "build_tree",
    "capture",
    "collapse",
    "collapse_dtrace",
    "collapse_file",
    "collapse_perf",
    "fold",
    "profile",
    "render",
    "render_folded_files",
    "render_svg",
    "select_backend",
    "version",
]

__version__: str = "0.3.0"
version: str = __version__
