"""Tests for the voxel volume calculator and class attribution."""
import numpy as np
import pytest

from food_volume.volume_calculation import (
    VolumeCalculator,
    attribute_volume,
    select_food_class,
)

VOXEL_VOLUME_ML = 2.0 ** 3 / 1000.0


def lattice_cuboid(size_m, spacing_m=0.002, origin=(0.0, 0.0, 0.0)):
    """One point at the centre of every 2 mm cell of a cuboid."""
    axes = [
        origin[i] + spacing_m / 2 + np.arange(int(round(size_m[i] / spacing_m))) * spacing_m
        for i in range(3)
    ]
    grid = np.stack(np.meshgrid(*axes, indexing='ij'), axis=-1)
    return grid.reshape(-1, 3)


class TestVolumeCalculator:

    def test_empty_cloud_has_zero_volume(self):
        result = VolumeCalculator().calculate_volume_voxel(np.empty((0, 3)), base_z=0.0)

        assert result['volume_ml'] == 0.0
        assert result['num_filled_voxels'] == 0

    def test_points_below_base_are_ignored(self):
        points = lattice_cuboid((0.01, 0.01, 0.01))

        result = VolumeCalculator().calculate_volume_voxel(points, base_z=1.0)

        assert result['volume_ml'] == 0.0
        assert result['num_points_above_base'] == 0

    def test_cuboid_volume_within_one_voxel(self):
        points = lattice_cuboid((0.05, 0.05, 0.02))

        result = VolumeCalculator().calculate_volume_voxel(points, base_z=0.0)

        assert result['volume_ml'] == pytest.approx(50.0, abs=VOXEL_VOLUME_ML)

    def test_base_surface_cuts_the_cuboid(self):
        points = lattice_cuboid((0.02, 0.02, 0.02))

        # keeps the upper five 2 mm layers
        result = VolumeCalculator().calculate_volume_voxel(points, base_z=0.0105)

        assert result['volume_ml'] == pytest.approx(4.0, abs=VOXEL_VOLUME_ML)

    def test_single_point_fills_one_voxel(self):
        result = VolumeCalculator().calculate_volume_voxel(np.array([[0.1, 0.1, 0.3]]), base_z=0.0)

        assert result['grid_shape'] == (1, 1, 1)
        assert result['volume_ml'] == pytest.approx(VOXEL_VOLUME_ML)

    def test_threshold_scales_with_point_density(self):
        dense = np.zeros((1000, 3))
        stray = np.array([[0.02, 0.0, 0.0]])

        result = VolumeCalculator().calculate_volume_voxel(np.vstack([dense, stray]), base_z=0.0)

        assert result['min_points_threshold'] > 1
        assert result['num_filled_voxels'] == 1

    def test_voxel_size_is_configurable(self):
        points = lattice_cuboid((0.04, 0.04, 0.04), spacing_m=0.004)

        result = VolumeCalculator(voxel_size_mm=4.0).calculate_volume_voxel(points, base_z=0.0)

        assert result['volume_ml'] == pytest.approx(64.0, abs=4.0 ** 3 / 1000.0)


class TestClassAttribution:

    LABELS = ["background", "food_containers", "rice", "dairy"]

    def test_external_classification_wins(self):
        volumes = attribute_volume(12.0, self.LABELS, "fried_rice")

        assert volumes == {"fried_rice": 12.0}

    def test_unknown_classification_falls_back_to_first_food_label(self):
        assert select_food_class(self.LABELS, "unknown") == "rice"

    def test_missing_classification_falls_back_to_first_food_label(self):
        assert select_food_class(self.LABELS, None) == "rice"

    def test_no_food_label_gives_unknown_food(self):
        assert select_food_class(["background", "Food_Containers", "dining_tools"]) == "unknown_food"

    def test_single_component_volume(self):
        volumes = attribute_volume(7.5, self.LABELS)

        assert list(volumes) == ["rice"]
        assert sum(volumes.values()) == 7.5

    def test_negative_volume_is_clamped(self):
        assert attribute_volume(-1.0, self.LABELS) == {"rice": 0.0}
