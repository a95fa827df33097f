import json
import tempfile
import unittest
from pathlib import Path

from facedet_kit.config import (
    Anchor,
    SsdMobilenetv1Config,
    SsdMobilenetv1Options,
    TINY_FACE_DETECTOR_CONFIG,
    TinyYolov2Config,
    TinyYolov2Options,
    VOC_TINY_YOLOV2_CONFIG,
    classes_from_names,
    load_tiny_yolov2_config,
)
from facedet_kit.errors import InvalidConfiguration


class TestTinyYolov2Config(unittest.TestCase):
    def test_presets(self) -> None:
        self.assertFalse(TINY_FACE_DETECTOR_CONFIG.class_scoring)
        self.assertEqual(TINY_FACE_DETECTOR_CONFIG.box_encoding_size, 5)
        self.assertEqual(TINY_FACE_DETECTOR_CONFIG.num_anchors, 5)
        self.assertTrue(VOC_TINY_YOLOV2_CONFIG.class_scoring)
        self.assertEqual(VOC_TINY_YOLOV2_CONFIG.box_encoding_size, 25)

    def test_single_class_with_scores(self) -> None:
        cfg = TinyYolov2Config(anchors=(Anchor(1, 1),), classes=("face",), with_class_scores=True)
        self.assertEqual(cfg.box_encoding_size, 6)

    def test_invalid_configs(self) -> None:
        anchors = (Anchor(1.0, 1.0),)
        bad = [
            dict(anchors=()),
            dict(anchors=(Anchor(0.0, 1.0),)),
            dict(anchors=((1.0, 1.0),)),
            dict(anchors=anchors, classes=()),
            dict(anchors=anchors, iou_threshold=1.5),
            dict(anchors=anchors, mean_rgb=(1.0, 2.0)),
            dict(anchors=anchors, filter_sizes=(3, 16, 32)),
            dict(anchors=anchors, max_results=0),
            dict(anchors=anchors, max_results="10"),
            dict(anchors=anchors, max_results=2.5),
            dict(anchors=(Anchor("a", 1.0),)),
        ]
        for kwargs in bad:
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(InvalidConfiguration):
                    TinyYolov2Config(**kwargs)

    def test_filter_sizes_accepted(self) -> None:
        cfg = TinyYolov2Config(anchors=(Anchor(1, 1),), filter_sizes=(3, 16, 32, 64, 128, 256, 512, 1024, 1024))
        self.assertEqual(len(cfg.filter_sizes), 9)


class TestOptions(unittest.TestCase):
    def test_defaults(self) -> None:
        self.assertEqual(TinyYolov2Options().input_size, 416)
        self.assertEqual(SsdMobilenetv1Options().max_results, 100)
        self.assertEqual(SsdMobilenetv1Config().iou_threshold, 0.5)

    def test_input_size_must_be_multiple_of_32(self) -> None:
        with self.assertRaises(InvalidConfiguration):
            TinyYolov2Options(input_size=300)
        with self.assertRaises(InvalidConfiguration):
            SsdMobilenetv1Config(input_size=0)

    def test_thresholds_in_unit_range(self) -> None:
        with self.assertRaises(InvalidConfiguration):
            TinyYolov2Options(score_threshold=-0.1)
        with self.assertRaises(InvalidConfiguration):
            SsdMobilenetv1Options(min_confidence=2.0)
        with self.assertRaises(ValueError):
            SsdMobilenetv1Options(max_results=0)

    def test_max_results_must_be_an_integer(self) -> None:
        for value in (2.5, "10", True):
            with self.subTest(max_results=value):
                with self.assertRaises(InvalidConfiguration):
                    SsdMobilenetv1Options(max_results=value)
        self.assertIsNone(SsdMobilenetv1Options(max_results=None).max_results)


class TestLoadConfig(unittest.TestCase):
    def _write(self, payload) -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / "detector.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    def test_load_ok(self) -> None:
        path = self._write(
            {
                "anchors": [{"x": 1.08, "y": 1.19}, {"x": 3.42, "y": 4.41}],
                "classes": ["cat", "dog"],
                "iou_threshold": 0.45,
                "mean_rgb": [1, 2, 3],
                "with_separable_convs": True,
            }
        )
        cfg = load_tiny_yolov2_config(path)
        self.assertEqual(cfg.anchors, (Anchor(1.08, 1.19), Anchor(3.42, 4.41)))
        self.assertEqual(cfg.classes, ("cat", "dog"))
        self.assertTrue(cfg.class_scoring)
        self.assertEqual(cfg.mean_rgb, (1, 2, 3))
        self.assertEqual(cfg.iou_threshold, 0.45)

    def test_unknown_keys_rejected(self) -> None:
        path = self._write({"anchors": [{"x": 1, "y": 1}], "extra": 1})
        with self.assertRaises(InvalidConfiguration):
            load_tiny_yolov2_config(path)

    def test_bad_value_types_rejected(self) -> None:
        payloads = [
            {"anchors": [{"x": 1, "y": 1}], "max_results": "10"},
            {"anchors": [{"x": 1, "y": 1}], "max_results": 2.5},
            {"anchors": [{"x": "a", "y": 1}]},
            {"anchors": [{"x": None, "y": 1}]},
        ]
        for payload in payloads:
            with self.subTest(payload=payload):
                with self.assertRaises(InvalidConfiguration):
                    load_tiny_yolov2_config(self._write(payload))

    def test_missing_anchors_rejected(self) -> None:
        with self.assertRaises(InvalidConfiguration):
            load_tiny_yolov2_config(self._write({"classes": ["face"]}))

    def test_bad_json_and_missing_file(self) -> None:
        path = self._write({})
        path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(InvalidConfiguration):
            load_tiny_yolov2_config(path)
        with self.assertRaises(FileNotFoundError):
            load_tiny_yolov2_config(path.with_name("missing.json"))

    def test_classes_from_names(self) -> None:
        self.assertEqual(classes_from_names({1: "b", 0: "a"}), ("a", "b"))
        with self.assertRaises(InvalidConfiguration):
            classes_from_names({0: "a", 2: "c"})


if __name__ == "__main__":
    unittest.main()
