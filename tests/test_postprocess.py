import unittest

import numpy as np

from facedet_kit.class_scores import ClassScorer
from facedet_kit.config import TINY_FACE_DETECTOR_CONFIG
from facedet_kit.decode import AnchorGridDecoder, BoxDecoder, Candidates, DecodeContext, DirectRegressionDecoder
from facedet_kit.postprocess import DetectionAssembler, DetectionPostConfig, DetectionPostprocessor
from facedet_kit.square import square_transform
from facedet_kit.types import Dimensions


class _FixedDecoder(BoxDecoder):
    def __init__(self, candidates: Candidates):
        self.candidates = candidates

    def decode(self, raw, ctx: DecodeContext) -> Candidates:
        return self.candidates


def _candidates(boxes, scores, labels=None) -> Candidates:
    scores = np.asarray(scores, dtype=np.float64)
    return Candidates(
        boxes=np.asarray(boxes, dtype=np.float64),
        scores=scores,
        class_scores=scores.copy(),
        labels=np.asarray(labels if labels is not None else [0] * len(scores), dtype=np.int64),
    )


class TestDetectionAssembler(unittest.TestCase):
    def test_maps_back_through_crop(self) -> None:
        cands = _candidates([[0.25, 0.25, 0.75, 0.75], [0.0, 0.0, 1.0, 1.0]], [0.6, 0.9], [0, 1])
        t = square_transform(200, 100, 512)
        dets = DetectionAssembler(("face", "hand")).assemble(cands, np.array([1, 0]), t)

        self.assertEqual([d.score for d in dets], [0.9, 0.6])
        self.assertEqual([d.class_label for d in dets], ["hand", "face"])
        self.assertEqual(dets[1].image_dims, Dimensions(200, 100))

        box = dets[1].box
        self.assertAlmostEqual(box.x, 75.0)
        self.assertAlmostEqual(box.y, 25.0)
        self.assertAlmostEqual(box.width, 50.0)
        self.assertAlmostEqual(box.height, 50.0)

        full = dets[0].box
        self.assertAlmostEqual(full.x, 50.0)
        self.assertAlmostEqual(full.right, 150.0)
        self.assertAlmostEqual(full.height, 100.0)

    def test_no_class_names(self) -> None:
        cands = _candidates([[0.1, 0.1, 0.2, 0.2]], [0.7])
        dets = DetectionAssembler().assemble(cands, np.array([0]), square_transform(64, 64, 64))
        self.assertIsNone(dets[0].class_label)
        self.assertEqual(dets[0].class_id, 0)

    def test_empty_indices(self) -> None:
        cands = _candidates([[0.1, 0.1, 0.2, 0.2]], [0.7])
        self.assertEqual(DetectionAssembler().assemble(cands, np.array([], dtype=np.int64), square_transform(8, 8, 32)), [])


class TestDetectionPostprocessor(unittest.TestCase):
    def test_round_trip_stays_inside_image(self) -> None:
        rng = np.random.default_rng(3)
        grid = rng.choice([-50.0, 50.0], size=(13, 13, 25)).astype(np.float32)
        post = DetectionPostprocessor(
            AnchorGridDecoder(TINY_FACE_DETECTOR_CONFIG.anchors, ClassScorer(0)),
            DetectionPostConfig(iou_threshold=0.4, max_detections=100),
            class_names=TINY_FACE_DETECTOR_CONFIG.classes,
        )
        dets = post.process(grid, square_transform(300, 150, 416), score_threshold=0.5)
        self.assertGreater(len(dets), 0)
        self.assertLessEqual(len(dets), 100)
        for d in dets:
            rel = d.relative_box
            for v in (rel.x, rel.y, rel.right, rel.bottom):
                self.assertGreaterEqual(v, 0.0)
                self.assertLessEqual(v, 1.0 + 1e-9)
            self.assertEqual(d.class_label, "face")
        scores = [d.score for d in dets]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_all_zero_confidence_gives_empty_list(self) -> None:
        post = DetectionPostprocessor(DirectRegressionDecoder(), DetectionPostConfig(min_confidence=0.5))
        boxes = np.tile(np.array([0.1, 0.1, 0.5, 0.5], dtype=np.float32), (100, 1))
        dets = post.process((boxes, np.zeros((100,), dtype=np.float32)), square_transform(640, 480, 512))
        self.assertEqual(dets, [])

    def test_inverted_regression_box_is_suppressed(self) -> None:
        post = DetectionPostprocessor(DirectRegressionDecoder(), DetectionPostConfig(min_confidence=0.5))
        raw = ([[0.1, 0.1, 0.9, 0.9], [0.6, 0.6, 0.4, 0.4]], [0.9, 0.8])
        dets = post.process(raw, square_transform(100, 100, 512))
        self.assertEqual(len(dets), 1)
        self.assertAlmostEqual(dets[0].score, 0.9)
        self.assertGreater(dets[0].box.width, 0.0)
        self.assertGreater(dets[0].box.height, 0.0)

    def test_cap_and_order(self) -> None:
        boxes = [[i * 0.2, 0.0, i * 0.2 + 0.1, 0.1] for i in range(5)]
        cands = _candidates(boxes, [0.2, 0.9, 0.4, 0.8, 0.6])
        post = DetectionPostprocessor(_FixedDecoder(cands), DetectionPostConfig(max_detections=2))
        dets = post.process(None, square_transform(100, 100, 32))
        self.assertEqual([d.score for d in dets], [0.9, 0.8])

    def test_per_class_nms(self) -> None:
        boxes = [[0.1, 0.1, 0.5, 0.5], [0.1, 0.1, 0.5, 0.49], [0.6, 0.6, 0.9, 0.9]]
        cands = _candidates(boxes, [0.9, 0.8, 0.7], [0, 1, 0])

        agnostic = DetectionPostprocessor(_FixedDecoder(cands), DetectionPostConfig(iou_threshold=0.5))
        self.assertEqual([d.score for d in agnostic.process(None, square_transform(64, 64, 64))], [0.9, 0.7])

        per_class = DetectionPostprocessor(
            _FixedDecoder(cands), DetectionPostConfig(iou_threshold=0.5, class_agnostic_nms=False)
        )
        dets = per_class.process(None, square_transform(64, 64, 64))
        self.assertEqual([d.score for d in dets], [0.9, 0.8, 0.7])
        self.assertEqual([d.class_id for d in dets], [0, 1, 0])

        capped = DetectionPostprocessor(
            _FixedDecoder(cands), DetectionPostConfig(iou_threshold=0.5, max_detections=2, class_agnostic_nms=False)
        )
        self.assertEqual(len(capped.process(None, square_transform(64, 64, 64))), 2)


if __name__ == "__main__":
    unittest.main()
