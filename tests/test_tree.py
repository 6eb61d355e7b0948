import random

from useprof.collapse import FoldedStacks
from useprof.errors import EmptyTree
from useprof.tree import FlameNode, build_tree

from .base import TestBase


def _assert_conserved(test, node: FlameNode) -> None:
    if node.children:
        test.assertEqual(node.value, sum(c.value for c in node.children.values()))
    for child in node.children.values():
        _assert_conserved(test, child)


class TestBuildTree(TestBase):
    def test_example_tree(self):
        root = build_tree("a;b 2\na;c 1\n")
        self.assertEqual(root.value, 3)
        a = root.children["a"]
        self.assertEqual(a.value, 3)
        self.assertEqual(a.children["b"].value, 2)
        self.assertEqual(a.children["c"].value, 1)
        self.assertEqual(a.children["b"].children, {})

    def test_accepts_folded_stacks_and_lines(self):
        text = "a;b 2\na;c 1\n"
        from_text = build_tree(text)
        from_stacks = build_tree(FoldedStacks.from_text(text))
        from_lines = build_tree(text.splitlines())
        for root in (from_stacks, from_lines):
            self.assertEqual(root.value, from_text.value)
            self.assertEqual(
                [(d, n.name, n.value) for d, n in root.walk()],
                [(d, n.name, n.value) for d, n in from_text.walk()],
            )

    def test_empty_key_only_counts_root(self):
        stacks = FoldedStacks()
        stacks.add_key("", 4)
        stacks.add_key("main", 1)
        root = build_tree(stacks)
        self.assertEqual(root.value, 5)
        self.assertEqual(list(root.children), ["main"])
        self.assertEqual(root.children["main"].value, 1)

    def test_same_name_at_different_depths(self):
        root = build_tree("f;f;f 2\nf 1\n")
        self.assertEqual(root.children["f"].value, 3)
        self.assertEqual(root.children["f"].children["f"].value, 2)
        self.assertEqual(root.max_depth(), 3)

    def test_conservation(self):
        # every stack is four frames deep, so no stack ends at an inner node
        rng = random.Random(42)
        names = ["main", "read", "write", "poll", "parse", "hash"]
        lines = []
        total = 0
        for _ in range(200):
            depth = 4
            count = rng.randint(1, 50)
            total += count
            lines.append(";".join(rng.choice(names) for _ in range(depth)) + f" {count}")
        root = build_tree(lines)
        self.assertEqual(root.value, total)
        _assert_conserved(self, root)

    def test_conservation_with_prefix_stacks(self):
        # "a" alone ends inside the tree, so a's children do not add up to a
        root = build_tree("a 3\na;b 2\n")
        self.assertEqual(root.value, 5)
        self.assertEqual(root.children["a"].value, 5)
        self.assertEqual(root.children["a"].children["b"].value, 2)

    def test_empty_input_is_rejected(self):
        for text in ("", "\n\n", "garbage\n", "a;b 0\n"):
            with self.assertRaises(EmptyTree):
                build_tree(text)

    def test_walk_is_depth_first_in_name_order(self):
        root = build_tree("m;z 1\nm;a;x 1\nb 1\n")
        order = [(d, n.name) for d, n in root.walk()]
        self.assertEqual(
            order,
            [(0, "root"), (1, "b"), (1, "m"), (2, "a"), (3, "x"), (2, "z")],
        )

    def test_children_order_is_independent_of_input_order(self):
        lines = ["a;b 1", "a;c 2", "d 3", "a;e;f 4", "g 1"]
        expected = [(d, n.name, n.value) for d, n in build_tree(lines).walk()]
        for shift in range(len(lines)):
            rotated = lines[shift:] + lines[:shift]
            self.assertEqual(
                [(d, n.name, n.value) for d, n in build_tree(rotated).walk()], expected
            )

    def test_node_repr(self):
        node = FlameNode("main")
        node.value = 7
        self.assertEqual(str(node), "main (7)")
        self.assertEqual(repr(node), "main (7)")
        self.assertEqual(node.max_depth(), 0)
        self.assertIs(node.child("x"), node.child("x"))
