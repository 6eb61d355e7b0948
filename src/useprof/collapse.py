"""
Stack collapsing
================

Turns the raw stack dumps of the supported profilers into the folded
("collapsed") stack format understood by every flame graph tool::

    func_a;func_b;func_c 100
    func_a;func_d 50

Frames are listed root first, leaf last, and each distinct call path appears
exactly once with the number of samples that hit it.
"""

from __future__ import annotations

import enum
import io
from collections import defaultdict
from collections.abc import Iterable, Iterator

from .logger import log

SEPARATOR = ";"


class StackFormat(enum.Enum):
    """Raw dump families understood by :func:`collapse`."""

    # leaf first, indented "address symbol+offset (module)" lines,
    # records separated by blank lines
    PERF = "perf"
    # root first, one "module`symbol+offset" per line, records closed by a
    # blank line or a line holding only the sample count
    DTRACE = "dtrace"


class FoldedStacks:
    """Aggregated call paths keyed by their semicolon joined frames."""

    def __init__(self) -> None:
        self._stacks: dict[str, int] = defaultdict(int)

    def add(self, frames: list[str], count: int = 1) -> None:
        """Add ``count`` samples for the root-first frame list ``frames``."""
        self.add_key(SEPARATOR.join(frames), count)

    def add_key(self, key: str, count: int) -> None:
        self._stacks[key] += count

    def merge(self, other: FoldedStacks) -> None:
        for key, count in other.items():
            self.add_key(key, count)

    @property
    def total(self) -> int:
        return sum(self._stacks.values())

    def items(self) -> list[tuple[str, int]]:
        """Records sorted by key."""
        return sorted(self._stacks.items())

    def __iter__(self) -> Iterator[tuple[str, int]]:
        return iter(self.items())

    def __len__(self) -> int:
        return len(self._stacks)

    def __getitem__(self, key: str) -> int:
        return self._stacks[key] if key in self._stacks else 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FoldedStacks):
            return NotImplemented
        return dict(self._stacks) == dict(other._stacks)

    def __repr__(self) -> str:
        return f"FoldedStacks({len(self)} stacks, {self.total} samples)"

    def to_text(self) -> str:
        """Serialize as ``key count`` lines sorted by key."""
        return "".join(f"{key} {count}\n" for key, count in self.items())

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> FoldedStacks:
        """Parse folded stack lines, repeated keys are summed.

        Example input line:
            func_a;func_b;func_c 100
        """
        stacks = cls()
        for line in lines:
            line = line.rstrip("\r\n")
            if not line.strip():
                continue

            parts = line.rsplit(" ", 1)
            if len(parts) != 2:
                log.debug("Invalid folded line (ignored): %s", line)
                continue

            key, count_str = parts
            try:
                count = int(count_str)
            except ValueError:
                log.debug("Invalid folded line (ignored): %s", line)
                continue
            if count <= 0:
                log.debug("Non-positive count (ignored): %s", line)
                continue
            stacks.add_key(key, count)
        return stacks

    @classmethod
    def from_text(cls, text: str) -> FoldedStacks:
        return cls.from_lines(text.splitlines())


def _lines(stream: Iterable[str] | str | bytes) -> Iterable[str]:
    if isinstance(stream, bytes):
        stream = stream.decode("utf-8", errors="replace")
    if isinstance(stream, str):
        return io.StringIO(stream)
    return stream


def _strip_offset(symbol: str) -> str:
    idx = symbol.find("+")
    if idx > 0:
        return symbol[:idx]
    return symbol


def collapse_perf(stream: Iterable[str] | str | bytes) -> FoldedStacks:
    """Fold ``perf script`` output.

    A sample looks like::

        swapper     0 [000]  1.000: 10101 cpu-clock:
                ffffffff810a perf_event_task_tick+0xa ([kernel.kallsyms])
                ffffffff8108 scheduler_tick+0x4 ([kernel.kallsyms])

    The header line is skipped, frames are read leaf first and reversed.
    """
    stacks = FoldedStacks()
    current: list[str] = []

    def flush() -> None:
        if current:
            current.reverse()
            stacks.add(current)
            current.clear()

    for line in _lines(stream):
        line = line.rstrip("\r\n")
        trimmed = line.strip()
        if not trimmed:
            flush()
            continue

        if line.startswith("\t") or line.startswith("  "):
            fields = trimmed.split()
            if len(fields) >= 2:
                current.append(_strip_offset(fields[1]))

    # the dump may end without a blank line
    flush()
    return stacks


def _is_count_line(text: str) -> bool:
    return text.isascii() and text.isdigit()


def collapse_dtrace(stream: Iterable[str] | str | bytes) -> FoldedStacks:
    """Fold root-first stack dumps (``dtrace`` aggregations, ``sample``).

    Each record is a run of frames, optionally module qualified as
    ``libc.so`func+0x10``, closed by a blank line (one sample) or by a line
    holding only the number of samples.
    """
    stacks = FoldedStacks()
    current: list[str] = []

    def flush(count: int) -> None:
        if current:
            if count > 0:
                stacks.add(current, count)
            current.clear()

    for line in _lines(stream):
        trimmed = line.strip()
        if not trimmed:
            flush(1)
            continue

        if _is_count_line(trimmed):
            flush(int(trimmed))
            continue

        symbol = trimmed
        idx = symbol.find("`")
        if idx >= 0:
            symbol = symbol[idx + 1 :]
        current.append(_strip_offset(symbol))

    flush(1)
    return stacks


_COLLAPSERS = {
    StackFormat.PERF: collapse_perf,
    StackFormat.DTRACE: collapse_dtrace,
}


def collapse(stream: Iterable[str] | str | bytes, fmt: StackFormat | str) -> FoldedStacks:
    """Fold a raw dump of the given family into :class:`FoldedStacks`.

    Records without any frame are dropped, so the result may be empty.
    """
    fmt = StackFormat(fmt)
    stacks = _COLLAPSERS[fmt](stream)
    log.debug("collapsed %s dump into %r", fmt.value, stacks)
    return stacks
