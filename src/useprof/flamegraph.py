"""
Flame graph SVG renderer
========================

Lays a weighted call tree out as a flame graph: the root spans the full
usable width in the bottom row, every child gets a slice of its parent's
width proportional to its sample count, and deeper frames stack upward.

The output is deterministic: children are drawn in name order, colors depend
only on the depth and the scheme, and nothing time dependent is emitted.
"""

from __future__ import annotations

import enum
import html
from typing import NamedTuple

from .errors import EmptyTree
from .tree import FlameNode


class ColorScheme(enum.Enum):
    HOT = "hot"
    COLD = "cold"
    MEM = "mem"

    def color(self, depth: int) -> tuple[int, int, int]:
        """Deterministic RGB triple for frames at ``depth``."""
        if self is ColorScheme.COLD:
            return 30, 50 + (depth * 30) % 150, 150 + (depth * 20) % 100
        if self is ColorScheme.MEM:
            return 30, 190 + (depth * 15) % 60, 30
        return 200 + (depth * 15) % 55, 50 + (depth * 40) % 150, 30


class RenderSpec:
    """Everything the renderer needs to know, no module level styling."""

    def __init__(
        self,
        *,
        width: int = 1200,
        height: int | None = None,
        title: str = "Flame Graph",
        color_scheme: ColorScheme | str = ColorScheme.HOT,
        frame_height: int = 16,
        font_size: int = 12,
        header_height: int = 40,
        margin: int = 20,
        side_margin: int = 10,
        min_label_width: int = 40,
        char_width: int = 7,
    ) -> None:
        """Initialize a RenderSpec.

        Args:
            width: Image width in pixels.
            height: Image height in pixels. Derived from the tree depth when
                None: ``(max_depth + 2) * frame_height + header_height + margin``.
            title: Title drawn at the top of the image.
            color_scheme: One of ``hot``, ``cold`` or ``mem``.
            frame_height: Height of one stack level in pixels.
            font_size: Font size of frame labels.
            header_height: Space reserved for the title.
            margin: Space kept below the root row.
            side_margin: Space kept on the left and right of the root frame.
            min_label_width: Frames this wide or narrower get no label.
            char_width: Approximate width of one label character.
        """
        if width <= 0:
            raise ValueError("width must be a positive integer")
        if height is not None and height <= 0:
            raise ValueError("height must be a positive integer")
        if width - 2 * side_margin < 1:
            raise ValueError("width leaves no room for frames")
        self.width = width
        self.height = height
        self.title = title
        self.color_scheme = ColorScheme(color_scheme)
        self.frame_height = frame_height
        self.font_size = font_size
        self.header_height = header_height
        self.margin = margin
        self.side_margin = side_margin
        self.min_label_width = min_label_width
        self.char_width = char_width

    def image_height(self, max_depth: int) -> int:
        if self.height is not None:
            return self.height
        return (max_depth + 2) * self.frame_height + self.header_height + self.margin


class FrameBox(NamedTuple):
    """One laid out rectangle, ``x``/``width`` in pixels."""

    node: FlameNode
    depth: int
    x: int
    width: int


class FlameGraph:
    def __init__(self, root: FlameNode, spec: RenderSpec | None = None) -> None:
        """
        Args:
            root (FlameNode): Tree built by :func:`useprof.tree.build_tree`.
            spec (RenderSpec): Size, title and colors, defaults when None.

        Raises:
            EmptyTree: If the root carries no samples.
        """
        if root.value <= 0:
            raise EmptyTree("cannot render a flame graph without samples")
        self.root = root
        self.spec = spec or RenderSpec()
        self.total_samples = root.value

    def layout(self) -> list[FrameBox]:
        """Place every node, parents before children, siblings by name.

        A child is ``floor(parent_width * child.value / parent.value)`` pixels
        wide but never narrower than one pixel; the flooring remainder stays
        blank at the right edge of the parent. Children that no longer fit
        inside the parent, which only happens to one pixel hairlines, are
        not drawn.
        """
        boxes: list[FrameBox] = []
        usable = self.spec.width - 2 * self.spec.side_margin
        stack = [FrameBox(self.root, 0, self.spec.side_margin, usable)]
        while stack:
            box = stack.pop()
            boxes.append(box)
            node = box.node
            child_x = box.x
            right = box.x + box.width
            placed: list[FrameBox] = []
            for child in node.sorted_children():
                if child_x >= right:
                    break
                child_width = max(1, box.width * child.value // node.value)
                child_width = min(child_width, right - child_x)
                placed.append(FrameBox(child, box.depth + 1, child_x, child_width))
                child_x += child_width
            stack.extend(reversed(placed))
        return boxes

    def _trim_text(self, text: str, width: int) -> str:
        """Trim text to fit in the given width"""
        if width <= self.spec.min_label_width:
            return ""
        max_chars = (width - 4) // self.spec.char_width
        if len(text) <= max_chars:
            return text
        if max_chars > 3:
            return text[: max_chars - 2] + ".."
        return ""

    def _frame_svg(self, box: FrameBox, base_y: int) -> list[str]:
        spec = self.spec
        node = box.node
        y = base_y - box.depth * spec.frame_height
        r, g, b = spec.color_scheme.color(box.depth)
        pct = node.value / self.total_samples * 100

        frame_svg = [
            '<g class="func">',
            f"<title>{html.escape(node.name)} ({node.value} samples, {pct:.1f}%)</title>",  # noqa: E501
            f'<rect x="{box.x}" y="{y - spec.frame_height}" width="{box.width}" height="{spec.frame_height - 1}" fill="rgb({r},{g},{b})" rx="1"/>',  # noqa: E501
        ]
        label = self._trim_text(node.name, box.width)
        if label:
            frame_svg.append(
                f'<text x="{box.x + 2}" y="{y - 4}" fill="black">{html.escape(label)}</text>'  # noqa: E501
            )
        frame_svg.append("</g>")
        return frame_svg

    def generate_svg(self) -> str:
        """Generate the SVG document."""
        spec = self.spec
        width = spec.width
        height = spec.image_height(self.root.max_depth())
        base_y = height - spec.margin

        svg = [
            '<?xml version="1.0" standalone="no"?>',
            '<!DOCTYPE svg PUBLIC "-//W3C//DTD SVG 1.1//EN" "http://www.w3.org/Graphics/SVG/1.1/DTD/svg11.dtd">',  # noqa: E501
            f'<svg version="1.1" width="{width}" height="{height}" viewBox="0 0 {width} {height}" xmlns="http://www.w3.org/2000/svg">',  # noqa: E501
            "<style>",
            ".func:hover { stroke: black; stroke-width: 0.5; cursor: pointer; }",
            f"text {{ font-family: monospace; font-size: {spec.font_size}px; }}",
            "</style>",
            f'<rect x="0" y="0" width="{width}" height="{height}" fill="white"/>',
            f'<text x="{width // 2}" y="20" text-anchor="middle" style="font-size:16px; font-weight:bold;">{html.escape(spec.title)}</text>',  # noqa: E501
            f'<text x="{width // 2}" y="35" text-anchor="middle" style="font-size:12px; fill:#666;">({self.total_samples} samples)</text>',  # noqa: E501
        ]

        for box in self.layout():
            svg.extend(self._frame_svg(box, base_y))

        svg.append("</svg>")
        return "\n".join(svg) + "\n"


def render_svg(root: FlameNode, spec: RenderSpec | None = None) -> str:
    """Render ``root`` as an SVG document."""
    return FlameGraph(root, spec).generate_svg()
