"""
Capture, fold, build, render.

Each stage depends on the complete output of the previous one, so they run
strictly one after another. Artifacts are only written once every stage has
succeeded.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from collections.abc import Iterable
from typing import NamedTuple

from .capture import CaptureBackend, CaptureContext, CaptureRequest, capture
from .collapse import FoldedStacks, StackFormat, collapse
from .errors import EmptyInput
from .flamegraph import RenderSpec, render_svg
from .logger import log
from .tree import build_tree


class ProfileResult(NamedTuple):
    svg_path: str
    folded_path: str
    sample_count: int
    elapsed: float
    backend: str


def folded_path_for(output: str) -> str:
    """``flamegraph.svg`` -> ``flamegraph.folded``."""
    root, _ = os.path.splitext(output)
    return root + ".folded"


def _umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def write_artifacts(contents: dict[str, str]) -> None:
    """Write every ``path: content`` pair or none of them.

    Each content goes to a temporary file in the target directory first, the
    temporary files are only moved into place once all of them are written.
    """
    mode = 0o666 & ~_umask()
    staged: dict[str, str] = {}
    try:
        for path, content in contents.items():
            directory = os.path.dirname(os.path.abspath(path))
            fd, tmp = tempfile.mkstemp(dir=directory, prefix=".useprof-", suffix=".tmp")
            staged[path] = tmp
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            # mkstemp creates the file owner-only
            os.chmod(tmp, mode)
        for path, tmp in staged.items():
            os.replace(tmp, path)
    except BaseException:
        for tmp in staged.values():
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp)
        raise


def write_atomic(path: str, content: str) -> None:
    """Write ``content`` to ``path`` through a temporary file in the same directory."""
    write_artifacts({path: content})


def fold(raw: str | bytes | Iterable[str], fmt: StackFormat | str) -> FoldedStacks:
    """Collapse a raw dump.

    Raises:
        EmptyInput: If the dump holds no stack record.
    """
    stacks = collapse(raw, fmt)
    if not stacks:
        raise EmptyInput("the profiler output contained no stack samples")
    return stacks


def render(folded: FoldedStacks | str, spec: RenderSpec | None = None) -> str:
    """Build the call tree of ``folded`` and render it as SVG."""
    return render_svg(build_tree(folded), spec)


def profile(
    request: CaptureRequest,
    spec: RenderSpec | None = None,
    *,
    ctx: CaptureContext | None = None,
    backend: CaptureBackend | None = None,
    folded_output: str | None = None,
) -> ProfileResult:
    """Run a full capture and write the folded stacks and the flame graph.

    Args:
        request: What to sample and where to write the SVG.
        spec: Rendering options.
        ctx: Cancellation context of the capture.
        backend: Backend to use, selected from the platform when None.
        folded_output: Folded stack path, next to the SVG when None.
    """
    outcome = capture(request, ctx, backend)
    log.debug(
        "%s produced %d bytes in %.2fs", outcome.backend, len(outcome.raw), outcome.elapsed
    )
    stacks = fold(outcome.raw, outcome.fold_format)
    svg = render(stacks, spec)

    folded_path = folded_output or folded_path_for(request.output)
    write_artifacts({folded_path: stacks.to_text(), request.output: svg})
    return ProfileResult(
        request.output, folded_path, stacks.total, outcome.elapsed, outcome.backend
    )


def read_folded_files(paths: Iterable[str]) -> FoldedStacks:
    """Merge several folded stack files."""
    stacks = FoldedStacks()
    for path in paths:
        with open(path, encoding="utf-8", errors="replace") as f:
            stacks.merge(FoldedStacks.from_lines(f))
    return stacks


def render_folded_files(
    paths: Iterable[str], output: str, spec: RenderSpec | None = None
) -> int:
    """Render saved folded stacks into ``output`` without sampling again.

    Returns:
        int: Total number of samples drawn.
    """
    stacks = read_folded_files(paths)
    write_atomic(output, render(stacks, spec))
    return stacks.total


def collapse_file(path: str, fmt: StackFormat | str, output: str) -> int:
    """Fold a saved raw profiler dump into ``output``.

    Returns:
        int: Number of distinct stacks written.
    """
    with open(path, encoding="utf-8", errors="replace") as f:
        stacks = fold(f, fmt)
    write_atomic(output, stacks.to_text())
    return len(stacks)
