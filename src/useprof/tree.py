from __future__ import annotations

from collections.abc import Iterable, Iterator

from .collapse import SEPARATOR, FoldedStacks
from .errors import EmptyTree


class FlameNode:
    __slots__ = ("children", "name", "value")

    def __init__(self, name: str):
        """
        Initialize a flame graph node with the given name.

        Args:
            name (str): The frame label.

        Attributes:
            name (str): Node identifier.
            value (int): Samples whose call path passes through this node.
            children (dict): Child nodes organized by frame name.
        """
        self.name = name
        self.value = 0
        self.children: dict[str, FlameNode] = {}

    def child(self, name: str) -> FlameNode:
        """Return the child called ``name``, creating it on first use."""
        node = self.children.get(name)
        if node is None:
            node = FlameNode(name)
            self.children[name] = node
        return node

    def sorted_children(self) -> list[FlameNode]:
        return [self.children[name] for name in sorted(self.children)]

    def max_depth(self) -> int:
        """Depth of the deepest descendant, 0 for a node without children."""
        depth = 0
        stack = [(self, 0)]
        while stack:
            node, d = stack.pop()
            depth = max(depth, d)
            stack.extend((c, d + 1) for c in node.children.values())
        return depth

    def walk(self) -> Iterator[tuple[int, FlameNode]]:
        """Yield ``(depth, node)`` depth first, children in name order."""
        stack = [(0, self)]
        while stack:
            depth, node = stack.pop()
            yield depth, node
            for child in reversed(node.sorted_children()):
                stack.append((depth + 1, child))

    def __str__(self):
        return f"{self.name} ({self.value})"

    def __repr__(self):
        return f"{self.name} ({self.value})"


def build_tree(folded: FoldedStacks | str | Iterable[str]) -> FlameNode:
    """Builds a call tree from folded stacks.

    Every record walks the tree from the root, creating one child per unseen
    frame, and adds its count to each node it passes through, the root
    included. A record with an empty key only counts towards the root.

    Args:
        folded: Parsed stacks, folded stack text or an iterable of its lines.

    Returns:
        FlameNode: The synthetic root, whose value is the total sample count.

    Raises:
        EmptyTree: If the records add up to zero samples.
    """
    if isinstance(folded, str):
        folded = FoldedStacks.from_text(folded)
    elif not isinstance(folded, FoldedStacks):
        folded = FoldedStacks.from_lines(folded)

    root = FlameNode("root")
    for key, count in folded.items():
        node = root
        node.value += count
        if not key:
            continue
        for frame in key.split(SEPARATOR):
            node = node.child(frame)
            node.value += count

    if root.value == 0:
        raise EmptyTree("no samples found in the folded stacks")
    return root
