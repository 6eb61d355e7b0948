"""
Capture backends
================

A capture runs an external sampling profiler for a whole number of seconds
and hands back its raw text output untouched. Which profiler is used depends
on the platform and on the tools found on the search path; the choice is made
once, before sampling starts, by :func:`select_backend`.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import signal
import subprocess
import sys
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Final, NamedTuple

from .collapse import StackFormat
from .errors import CaptureCancelled, CaptureFailed, ToolUnavailable, tail
from .logger import log

DEFAULT_DURATION: Final = 10.0
DEFAULT_FREQUENCY: Final = 99
DEFAULT_OUTPUT: Final = "flamegraph.svg"

_PRIVILEGE_HINTS: Final = ("permission", "privilege", "not permitted", "paranoid")


class CaptureRequest(NamedTuple):
    duration: float = DEFAULT_DURATION
    frequency: int = DEFAULT_FREQUENCY
    pid: int = 0
    output: str = DEFAULT_OUTPUT

    @classmethod
    def create(
        cls,
        duration: float = DEFAULT_DURATION,
        frequency: int = DEFAULT_FREQUENCY,
        pid: int | None = None,
        output: str = DEFAULT_OUTPUT,
    ) -> CaptureRequest:
        """Validate the parameters and build a request.

        Raises:
            ValueError: If the frequency is not positive or the pid negative.
        """
        if frequency <= 0:
            raise ValueError("frequency must be a positive integer")
        pid = pid or 0
        if pid < 0:
            raise ValueError("pid must not be negative")
        return cls(float(duration), int(frequency), pid, output)

    @property
    def seconds(self) -> int:
        """Whole seconds to sample for, at least one."""
        return max(1, int(self.duration))

    @property
    def system_wide(self) -> bool:
        return self.pid == 0


class CaptureOutcome(NamedTuple):
    raw: str
    fold_format: StackFormat
    backend: str
    elapsed: float


class CaptureContext:
    """Cancellation token shared between a caller and a running capture.

    The capture checks the token every ``poll_interval`` seconds; once it is
    cancelled, or the optional ``timeout`` has passed, the external process is
    killed and :class:`CaptureCancelled` is raised.
    """

    def __init__(self, timeout: float | None = None, poll_interval: float = 0.1):
        self._event = threading.Event()
        self._deadline = None if timeout is None else time.monotonic() + timeout
        self.poll_interval = poll_interval
        self.reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.reason = self.reason or "deadline exceeded"
            return True
        return False

    @contextlib.contextmanager
    def bind_signals(self) -> Iterator[CaptureContext]:
        """Cancel this context on SIGINT/SIGTERM while the block runs.

        Signal handlers can only be installed from the main thread; elsewhere
        the block runs without them.
        """
        if threading.current_thread() is not threading.main_thread():
            yield self
            return

        def _handler(signum, frame):
            self.cancel(f"interrupted by {signal.Signals(signum).name}")

        previous = {
            sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)
        }
        try:
            yield self
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)


def _kill_group(proc: subprocess.Popen) -> None:
    """Kill the tool and whatever it spawned, e.g. the `sleep` of `perf record`."""
    if hasattr(os, "killpg"):
        with contextlib.suppress(ProcessLookupError):
            os.killpg(proc.pid, signal.SIGKILL)
    else:  # pragma: no cover
        proc.kill()


def run_tool(ctx: CaptureContext, argv: list[str]) -> str:
    """Run ``argv`` to completion under ``ctx`` and return its stdout.

    Raises:
        ToolUnavailable: If the executable cannot be found.
        CaptureCancelled: If ``ctx`` is cancelled while the tool runs.
        CaptureFailed: If the tool exits with a non-zero status.
    """
    log.debug("running %s", " ".join(argv))
    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except FileNotFoundError as e:
        raise ToolUnavailable(f"{argv[0]} not found: {e}") from e

    with proc:
        try:
            while True:
                if ctx.cancelled:
                    _kill_group(proc)
                    _, err = proc.communicate()
                    raise CaptureCancelled(
                        f"{os.path.basename(argv[0])} {ctx.reason}",
                        proc.returncode,
                        tail(err.decode("utf-8", errors="replace")),
                    )
                try:
                    out, err = proc.communicate(timeout=ctx.poll_interval)
                    break
                except subprocess.TimeoutExpired:
                    continue
        except BaseException:
            # the tool has its own session, a KeyboardInterrupt never reaches it
            if proc.returncode is None:
                _kill_group(proc)
                proc.communicate()
            raise

    stderr = tail(err.decode("utf-8", errors="replace"))
    if proc.returncode != 0:
        message = " ".join([os.path.basename(argv[0]), *argv[1:2]]) + " failed"
        if any(hint in stderr.lower() for hint in _PRIVILEGE_HINTS):
            message += " (elevated privileges are probably required)"
        raise CaptureFailed(message, proc.returncode, stderr)
    return out.decode("utf-8", errors="replace")


class CaptureBackend(ABC):
    name: str = ""
    tool: str = ""
    fold_format: StackFormat = StackFormat.PERF
    platforms: tuple[str, ...] = ()
    priority: int = 0

    def __init__(self, search_path: str | None = None) -> None:
        """
        Args:
            search_path: PATH-like string used to look the tool up, the
                process PATH when None.
        """
        self.search_path = search_path

    def executable(self) -> str | None:
        return shutil.which(self.tool, path=self.search_path)

    def available(self) -> bool:
        return self.executable() is not None

    def supports(self, request: CaptureRequest) -> bool:
        return True

    def capture(self, ctx: CaptureContext, request: CaptureRequest) -> CaptureOutcome:
        """Sample for ``request.seconds`` seconds and return the raw dump."""
        exe = self.executable()
        if exe is None:
            raise ToolUnavailable(f"{self.tool} not found on PATH")
        if not self.supports(request):
            raise ToolUnavailable(f"{self.name} cannot serve this request: {request}")
        start = time.monotonic()
        raw = self._run(exe, ctx, request)
        return CaptureOutcome(raw, self.fold_format, self.name, time.monotonic() - start)

    @abstractmethod
    def _run(self, exe: str, ctx: CaptureContext, request: CaptureRequest) -> str:
        pass  # pragma: no cover

    def __repr__(self) -> str:
        return f"{type(self).__name__}(tool={self.tool!r})"


# Global registry for backends, kept in priority order
BACKEND_REGISTRY: dict[str, type[CaptureBackend]] = {}


def register_backend(cls: type[CaptureBackend]) -> type[CaptureBackend]:
    """Decorator adding a backend class to :data:`BACKEND_REGISTRY`."""
    BACKEND_REGISTRY[cls.name] = cls
    ordered = sorted(BACKEND_REGISTRY.values(), key=lambda c: -c.priority)
    BACKEND_REGISTRY.clear()
    BACKEND_REGISTRY.update((c.name, c) for c in ordered)
    return cls


@register_backend
class PerfBackend(CaptureBackend):
    """Linux ``perf``, kernel and user stacks, system wide or one process."""

    name = "perf"
    tool = "perf"
    fold_format = StackFormat.PERF
    platforms = ("linux",)
    priority = 100

    def _run(self, exe: str, ctx: CaptureContext, request: CaptureRequest) -> str:
        target = ["-a"] if request.system_wide else ["-p", str(request.pid)]
        with tempfile.TemporaryDirectory(prefix="useprof-") as tmp:
            data = os.path.join(tmp, "perf.data")
            run_tool(
                ctx,
                [
                    exe,
                    "record",
                    "-F",
                    str(request.frequency),
                    *target,
                    "-g",
                    "-o",
                    data,
                    "--",
                    "sleep",
                    str(request.seconds),
                ],
            )
            return run_tool(ctx, [exe, "script", "-i", data])


@register_backend
class DtraceBackend(CaptureBackend):
    """macOS ``dtrace`` profile provider, user stacks."""

    name = "dtrace"
    tool = "dtrace"
    fold_format = StackFormat.DTRACE
    platforms = ("darwin",)
    priority = 100

    @staticmethod
    def script(request: CaptureRequest) -> str:
        probe = f"profile-{request.frequency}"
        if request.system_wide:
            return f"{probe} {{ @[ustack()] = count(); }}"
        return f"{probe} /pid == {request.pid}/ {{ @[ustack()] = count(); }}"

    def _run(self, exe: str, ctx: CaptureContext, request: CaptureRequest) -> str:
        return run_tool(
            ctx, [exe, "-n", self.script(request), "-c", f"sleep {request.seconds}"]
        )


@register_backend
class SampleBackend(CaptureBackend):
    """macOS ``sample``, lower fidelity and bound to one process."""

    name = "sample"
    tool = "sample"
    fold_format = StackFormat.DTRACE
    platforms = ("darwin",)
    priority = 10

    def supports(self, request: CaptureRequest) -> bool:
        return request.pid > 0

    def _run(self, exe: str, ctx: CaptureContext, request: CaptureRequest) -> str:
        return run_tool(ctx, [exe, str(request.pid), str(request.seconds)])


def _platform_key(platform: str) -> str:
    return "linux" if platform.startswith("linux") else platform


def select_backend(
    request: CaptureRequest,
    platform: str = sys.platform,
    search_path: str | None = None,
    name: str | None = None,
) -> CaptureBackend:
    """Pick the backend that will serve ``request``.

    Backends of the platform are probed in priority order; the first whose
    tool is installed and which accepts the request wins.

    Args:
        request: The capture to serve.
        platform: ``sys.platform`` style identifier.
        search_path: PATH-like string for tool lookup.
        name: Force a backend by name instead of probing.

    Raises:
        ToolUnavailable: If no backend can serve the request.
    """
    key = _platform_key(platform)
    if name is not None:
        if name not in BACKEND_REGISTRY:
            raise ToolUnavailable(f"unknown capture backend {name!r}")
        candidates = [BACKEND_REGISTRY[name](search_path)]
    else:
        candidates = [
            cls(search_path) for cls in BACKEND_REGISTRY.values() if key in cls.platforms
        ]
    if not candidates:
        raise ToolUnavailable(f"no capture backend for platform {platform!r}")

    missing: list[str] = []
    for backend in candidates:
        if not backend.available():
            missing.append(f"{backend.tool} not found")
            continue
        if not backend.supports(request):
            missing.append(f"{backend.tool} requires a target pid")
            continue
        log.debug("selected capture backend %s", backend.name)
        return backend
    raise ToolUnavailable("no profiling tool available: " + ", ".join(missing))


def capture(
    request: CaptureRequest,
    ctx: CaptureContext | None = None,
    backend: CaptureBackend | None = None,
) -> CaptureOutcome:
    """Select a backend when none is given and run one capture."""
    backend = backend or select_backend(request)
    return backend.capture(ctx or CaptureContext(), request)
