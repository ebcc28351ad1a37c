import unittest

from panotour.geometry import (
    normalize_yaw,
    opposite_yaw,
    percentage_to_yaw_pitch,
    safe_float,
    yaw_pitch_to_percentage,
)
from panotour.errors import EmptyGraphError, ValidationError
from panotour.publisher import compile_navigation_graph, validate_graph
from panotour.scenes import parse_tags, slugify


class GeometryTests(unittest.TestCase):
    def test_normalize_yaw(self):
        self.assertEqual(normalize_yaw(190), -170)
        self.assertEqual(normalize_yaw(-190), 170)
        self.assertEqual(normalize_yaw(180), 180)
        self.assertEqual(normalize_yaw(720), 0)

    def test_opposite_yaw(self):
        self.assertEqual(opposite_yaw(30), 210)
        self.assertEqual(opposite_yaw(270), 90)
        self.assertEqual(opposite_yaw(-170), 10)

    def test_percentage_conversion(self):
        self.assertEqual(percentage_to_yaw_pitch(50, 50), (0.0, 0.0))
        self.assertEqual(percentage_to_yaw_pitch(75, 0), (90.0, 90.0))
        self.assertEqual(yaw_pitch_to_percentage(90, 90), (75.0, 0.0))
        self.assertEqual(percentage_to_yaw_pitch(150, -10), (180.0, 90.0))

    def test_safe_float(self):
        self.assertEqual(safe_float("12.5"), 12.5)
        self.assertEqual(safe_float(None, 3.0), 3.0)
        self.assertEqual(safe_float(float("nan")), 0.0)
        self.assertEqual(safe_float(True), 0.0)
        self.assertEqual(safe_float(10**400), 0.0)
        self.assertEqual(safe_float(-(10**400), 7.0), 7.0)


class HelperTests(unittest.TestCase):
    def test_slugify(self):
        self.assertEqual(slugify("  Master Bedroom #2 "), "master-bedroom-2")
        self.assertEqual(slugify(None), "")

    def test_parse_tags(self):
        self.assertEqual(parse_tags(["a", " ", "b "]), ["a", "b"])
        self.assertEqual(parse_tags("x,,y"), ["x", "y"])
        self.assertEqual(parse_tags(42), [])

    def test_navigation_graph_keeps_every_scene(self):
        scenes = [
            {"id": "a", "hotspots": [{"id": "h1"}, {"id": "h2"}]},
            {"id": "b", "hotspots": []},
        ]
        self.assertEqual(compile_navigation_graph(scenes), {"a": ["h1", "h2"], "b": []})

    def test_validate_graph_rejects_dangling_target(self):
        scenes = [
            {"id": "a", "hotspots": [{"id": "h1", "targetSceneId": "b"}]},
            {"id": "b", "hotspots": [{"id": "h2", "targetSceneId": "gone"}]},
        ]
        with self.assertRaises(ValidationError) as ctx:
            validate_graph(scenes, "a")
        self.assertIn("gone", ctx.exception.message)
        validate_graph(scenes[:1] + [{"id": "b", "hotspots": []}], "a")
        with self.assertRaises(EmptyGraphError):
            validate_graph([], "a")


if __name__ == "__main__":
    unittest.main()
