import re

from useprof.errors import EmptyTree
from useprof.flamegraph import ColorScheme, FlameGraph, RenderSpec, render_svg
from useprof.tree import FlameNode, build_tree

from .base import TestBase

FOLDED = """\
main;parse;tokenize 40
main;parse;tokenize;next_char 25
main;eval;call;builtin_len 10
main;eval;call 5
main;gc 1
"""


class TestRenderSpec(TestBase):
    def test_defaults(self):
        spec = RenderSpec()
        self.assertEqual(spec.width, 1200)
        self.assertIsNone(spec.height)
        self.assertEqual(spec.title, "Flame Graph")
        self.assertIs(spec.color_scheme, ColorScheme.HOT)

    def test_height_from_depth(self):
        spec = RenderSpec()
        self.assertEqual(spec.image_height(4), (4 + 2) * 16 + 40 + 20)
        self.assertEqual(RenderSpec(height=300).image_height(4), 300)

    def test_invalid_values(self):
        with self.assertRaises(ValueError) as cm:
            RenderSpec(width=0)
        self.assertIn("width must be a positive integer", str(cm.exception))
        with self.assertRaises(ValueError):
            RenderSpec(height=-1)
        with self.assertRaises(ValueError):
            RenderSpec(width=20)
        with self.assertRaises(ValueError):
            RenderSpec(color_scheme="rainbow")

    def test_scheme_from_string(self):
        self.assertIs(RenderSpec(color_scheme="cold").color_scheme, ColorScheme.COLD)


class TestColorScheme(TestBase):
    def test_values(self):
        self.assertEqual(ColorScheme.HOT.color(0), (200, 50, 30))
        self.assertEqual(ColorScheme.HOT.color(1), (215, 90, 30))
        self.assertEqual(ColorScheme.COLD.color(2), (30, 110, 190))
        self.assertEqual(ColorScheme.MEM.color(3), (30, 235, 30))

    def test_pure_and_in_range(self):
        for scheme in ColorScheme:
            for depth in range(64):
                rgb = scheme.color(depth)
                self.assertEqual(rgb, scheme.color(depth))
                self.assertTrue(all(0 <= c <= 255 for c in rgb))

    def test_adjacent_depths_differ(self):
        for scheme in ColorScheme:
            for depth in range(32):
                self.assertNotEqual(scheme.color(depth), scheme.color(depth + 1))


class TestLayout(TestBase):
    def test_root_spans_usable_width(self):
        graph = FlameGraph(build_tree(FOLDED))
        root_box = graph.layout()[0]
        self.assertEqual(root_box.node.name, "root")
        self.assertEqual(root_box.depth, 0)
        self.assertEqual(root_box.x, 10)
        self.assertEqual(root_box.width, 1180)

    def test_equal_children_split_even_width(self):
        graph = FlameGraph(build_tree("a 5\nb 5\n"), RenderSpec(width=220))
        boxes = {b.node.name: b for b in graph.layout()}
        self.assertEqual(boxes["root"].width, 200)
        self.assertEqual(boxes["a"].width, 100)
        self.assertEqual(boxes["b"].width, 100)
        self.assertEqual(boxes["a"].x, 10)
        self.assertEqual(boxes["b"].x, 110)

    def test_flooring_leaves_remainder_blank(self):
        graph = FlameGraph(build_tree("a 1\nb 1\nc 1\n"), RenderSpec(width=120))
        boxes = {b.node.name: b for b in graph.layout()}
        self.assertEqual([boxes[n].width for n in "abc"], [33, 33, 33])
        self.assertEqual([boxes[n].x for n in "abc"], [10, 43, 76])

    def test_tiny_children_become_hairlines(self):
        graph = FlameGraph(build_tree("big 100000\ntiny 1\n"), RenderSpec(width=120))
        boxes = {b.node.name: b for b in graph.layout()}
        self.assertEqual(boxes["tiny"].width, 1)
        self.assertEqual(boxes["big"].width, 99)

    def test_width_conservation(self):
        graph = FlameGraph(build_tree(FOLDED))
        boxes = graph.layout()
        by_node = {id(b.node): b for b in boxes}
        for box in boxes:
            children = [
                by_node[id(c)] for c in box.node.children.values() if id(c) in by_node
            ]
            if not children:
                continue
            self.assertLessEqual(sum(c.width for c in children), box.width)
            xs = [c.x for c in sorted(children, key=lambda c: c.node.name)]
            self.assertEqual(xs[0], box.x)
            for child in children:
                self.assertEqual(child.depth, box.depth + 1)

    def test_hairlines_stay_inside_the_parent(self):
        folded = "big 970\n" + "".join(f"small;c{i:02d} 1\n" for i in range(30))
        graph = FlameGraph(build_tree(folded), RenderSpec(width=120))
        boxes = graph.layout()
        small = next(b for b in boxes if b.node.name == "small")
        self.assertEqual(small.width, 3)
        children = [b for b in boxes if b.depth == 2]
        self.assertEqual([c.node.name for c in children], ["c00", "c01", "c02"])
        self.assertEqual(sum(c.width for c in children), small.width)
        for child in children:
            self.assertGreaterEqual(child.x, small.x)
            self.assertLessEqual(child.x + child.width, small.x + small.width)

    def test_children_in_name_order_without_gaps(self):
        graph = FlameGraph(build_tree("m;c 1\nm;a 2\nm;b 3\n"), RenderSpec(width=620))
        kids = [b for b in graph.layout() if b.depth == 2]
        self.assertEqual([k.node.name for k in kids], ["a", "b", "c"])
        for left, right in zip(kids, kids[1:]):
            self.assertEqual(left.x + left.width, right.x)

    def test_parents_before_children(self):
        seen = set()
        for box in FlameGraph(build_tree(FOLDED)).layout():
            for child in box.node.children.values():
                self.assertNotIn(id(child), seen)
            seen.add(id(box.node))


class TestFlameGraphSVG(TestBase):
    def test_document_structure(self):
        svg = render_svg(build_tree(FOLDED), RenderSpec(title="CPU <profile>"))
        self.assertTrue(svg.startswith('<?xml version="1.0" standalone="no"?>'))
        self.assertTrue(svg.rstrip().endswith("</svg>"))
        self.assertIn("CPU &lt;profile&gt;", svg)
        self.assertIn("(81 samples)", svg)
        # root plus one group per distinct frame
        self.assertEqual(svg.count('<g class="func">'), 9)

    def test_height_derived_from_depth(self):
        svg = render_svg(build_tree(FOLDED))
        # deepest frame is main;parse;tokenize;next_char at depth 4
        height = (4 + 2) * 16 + 40 + 20
        self.assertIn(f'width="1200" height="{height}"', svg)

    def test_tooltips(self):
        svg = render_svg(build_tree("a;b 2\na;c 1\n"))
        self.assertIn("<title>root (3 samples, 100.0%)</title>", svg)
        self.assertIn("<title>b (2 samples, 66.7%)</title>", svg)
        self.assertIn("<title>c (1 samples, 33.3%)</title>", svg)

    def test_names_are_escaped(self):
        svg = render_svg(build_tree("std::vector<int>::push_back&x 1\n"))
        self.assertIn("std::vector&lt;int&gt;::push_back&amp;x", svg)
        self.assertNotIn("vector<int>", svg)

    def test_root_drawn_at_bottom(self):
        spec = RenderSpec(height=200)
        svg = render_svg(build_tree("a;b 1\n"), spec)
        rects = re.findall(r'<rect x="(\d+)" y="(\d+)" width="(\d+)" height="15"', svg)
        ys = [int(y) for _, y, _ in rects]
        # base line at 200 - 20, rows of 16 pixels going up
        self.assertEqual(ys, [164, 148, 132])

    def test_colors_follow_scheme(self):
        svg = render_svg(build_tree("a 1\n"), RenderSpec(color_scheme="mem"))
        self.assertIn('fill="rgb(30,190,30)"', svg)
        self.assertIn('fill="rgb(30,205,30)"', svg)

    def test_labels_trimmed(self):
        graph = FlameGraph(build_tree("a 1\n"))
        self.assertEqual(graph._trim_text("main", 40), "")
        self.assertEqual(graph._trim_text("main", 41), "main")
        long_name = "a_really_long_function_name"
        # (60 - 4) // 7 = 8 characters fit
        self.assertEqual(graph._trim_text(long_name, 60), "a_real..")
        # (45 - 4) // 7 = 5 characters fit
        self.assertEqual(graph._trim_text(long_name, 45), "a_r..")

    def test_narrow_frames_have_no_label(self):
        svg = render_svg(build_tree("wide 1000\nnarrow_frame 1\n"))
        self.assertIn("<title>narrow_frame (1 samples, 0.1%)</title>", svg)
        self.assertNotIn(">narrow_frame</text>", svg)
        self.assertIn(">wide</text>", svg)

    def test_single_node_tree(self):
        root = FlameNode("root")
        root.value = 3
        svg = render_svg(root)
        self.assertIn("<title>root (3 samples, 100.0%)</title>", svg)
        self.assertEqual(svg.count('<g class="func">'), 1)

    def test_zero_root_is_rejected(self):
        with self.assertRaises(EmptyTree):
            FlameGraph(FlameNode("root"))

    def test_deterministic(self):
        spec = RenderSpec(width=900, title="same", color_scheme="cold")
        first = render_svg(build_tree(FOLDED), spec).encode()
        second = render_svg(build_tree(FOLDED), spec).encode()
        self.assertEqual(first, second)

    def test_input_order_does_not_change_image(self):
        lines = FOLDED.splitlines()
        self.assertEqual(
            render_svg(build_tree(lines)), render_svg(build_tree(list(reversed(lines))))
        )
