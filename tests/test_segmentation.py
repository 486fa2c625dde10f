"""Tests for region classification and class-id consolidation."""
import numpy as np

from food_volume.segmentation import SegmentationConsolidator

LABELS = ["background", "food_containers", "leafy_greens", "other_vegetables", "soups_stews", "dairy"]


def salad_mask():
    mask = np.zeros((40, 40), dtype=np.int32)
    mask[0:20, 0:20] = 2
    mask[0:20, 20:40] = 3
    return mask


IMAGE = np.zeros((40, 40, 3), dtype=np.uint8)


class TestConsolidateByDishType:

    def test_recognised_region_is_relabelled_and_merged(self):
        consolidator = SegmentationConsolidator(classify=lambda image: "caesar_salad")

        result = consolidator.consolidate_by_dish_type(IMAGE, salad_mask(), LABELS)

        assert result.labels[2] == "caesar_salad"
        assert result.labels[3] == "caesar_salad"
        assert set(np.unique(result.mask)) == {2}
        assert len(result.classifications) == 1

    def test_unknown_leaves_mask_alone(self):
        consolidator = SegmentationConsolidator(classify=lambda image: "unknown")
        mask = salad_mask()

        result = consolidator.consolidate_by_dish_type(IMAGE, mask, LABELS)

        np.testing.assert_array_equal(result.mask, mask)
        assert result.labels == LABELS
        assert result.classifications == []

    def test_classifier_failure_is_reported(self, capsys):
        def broken(image):
            raise RuntimeError("model offline")

        result = SegmentationConsolidator(classify=broken).consolidate_by_dish_type(IMAGE, salad_mask(), LABELS)

        assert "model offline" in capsys.readouterr().out
        assert result.labels == LABELS

    def test_small_regions_are_not_classified(self):
        calls = []
        mask = np.zeros((40, 40), dtype=np.int32)
        mask[0:2, 0:2] = 2
        mask[0:2, 2:4] = 3

        def classify(image):
            calls.append(image.shape)
            return "salad"

        SegmentationConsolidator(classify=classify).consolidate_by_dish_type(IMAGE, mask, LABELS)

        assert calls == []

    def test_without_classifier(self):
        result = SegmentationConsolidator().consolidate_by_dish_type(IMAGE, salad_mask(), LABELS)

        assert result.classifications == []

    def test_refined_mask_path(self):
        consolidator = SegmentationConsolidator(classify=lambda image: "salad", refine_mask=True)

        result = consolidator.consolidate_by_dish_type(IMAGE, salad_mask(), LABELS)

        assert result.mask.shape == (40, 40)
        assert set(np.unique(result.mask)) <= {0, 2, 3}


def test_consolidate_close_classes():
    mask = np.zeros((40, 40), dtype=np.int32)
    mask[0:10, 0:10] = 4
    mask[0:10, 15:25] = 5
    mask[30:40, 30:40] = 2
    seen = []

    def classify(image):
        seen.append(image.shape[:2])
        return "cream_soup"

    result = SegmentationConsolidator(classify=classify).consolidate_close_classes(IMAGE, mask, LABELS)

    assert seen == [(10, 25)]
    assert result.labels[4] == result.labels[5] == "cream_soup"
    assert result.labels[2] == "leafy_greens"
    assert set(np.unique(result.mask)) == {0, 2, 4}


class TestTightMerge:

    def make_mask(self):
        mask = np.zeros((20, 20), dtype=np.int32)
        mask[0:10, 0:10] = 2
        mask[0:10, 12:20] = 3
        return mask

    def test_high_confidence_merges(self):
        merged = SegmentationConsolidator().tight_merge(self.make_mask(), LABELS, confidence=0.95)

        assert set(np.unique(merged)) == {0, 2}

    def test_low_confidence_keeps_mask(self):
        mask = self.make_mask()

        merged = SegmentationConsolidator().tight_merge(mask, LABELS, confidence=0.5)

        np.testing.assert_array_equal(merged, mask)
        assert merged is not mask
