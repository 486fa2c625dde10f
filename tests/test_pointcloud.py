"""Tests for depth-to-point-cloud conversion and two-view fusion."""
import numpy as np
import pytest

from food_volume.pointcloud import (
    CameraPose,
    depth_frame_to_pointcloud,
    fuse_point_clouds,
)
from tests.conftest import FOOD_LABELS, make_frame


class TestDepthFrameToPointcloud:
    """Unprojection of a single view."""

    def test_only_food_pixels_are_used(self):
        mask = np.zeros((4, 4), dtype=np.int32)
        mask[:2, :] = 2      # rice
        mask[2, :] = 1       # container
        frame = make_frame(np.full((4, 4), 0.5), mask, FOOD_LABELS)

        points = depth_frame_to_pointcloud(frame)

        assert points.shape == (8, 3)

    def test_out_of_range_depth_is_dropped_not_clamped(self):
        depth = np.array([[0.05, 0.1, 0.5, 1.0, 1.5, 0.99]])
        mask = np.full((1, 6), 2)
        frame = make_frame(depth, mask, FOOD_LABELS)

        points = depth_frame_to_pointcloud(frame)

        assert sorted(np.round(points[:, 2], 4)) == [0.5, 0.99]

    def test_pinhole_unprojection_and_translation(self):
        frame = make_frame(
            np.full((4, 4), 0.5),
            np.full((4, 4), 2),
            FOOD_LABELS,
            translation=(1.0, 2.0, 3.0)
        )

        points = depth_frame_to_pointcloud(frame)

        # pixel (0, 0): fx = fy = 2, cx = cy = 2 -> (-0.5, -0.5, 0.5) + t
        np.testing.assert_allclose(points[0], [0.5, 1.5, 3.5])
        # pixel (2, 2) sits on the principal point
        np.testing.assert_allclose(points[2 * 4 + 2], [1.0, 2.0, 3.5])

    def test_mask_to_depth_index_scaling(self):
        depth = np.array([[0.2, 0.3], [0.4, 0.5]])
        frame = make_frame(depth, np.full((4, 4), 2), FOOD_LABELS)

        points = depth_frame_to_pointcloud(frame)
        z = points[:, 2].reshape(4, 4)

        assert z[0, 0] == pytest.approx(0.2)
        assert z[0, 3] == pytest.approx(0.3)
        assert z[2, 1] == pytest.approx(0.4)
        assert z[3, 3] == pytest.approx(0.5)

    def test_short_depth_buffer_does_not_raise(self):
        frame = make_frame(np.full((4, 4), 0.5), np.full((4, 4), 2), FOOD_LABELS)
        truncated = type(frame)(
            depth_values=frame.depth_values[:5],
            width=4,
            height=4,
            mask=frame.mask,
            labels=frame.labels,
            pose=frame.pose
        )

        points = depth_frame_to_pointcloud(truncated)

        assert len(points) == 5

    def test_empty_mask_gives_empty_cloud(self):
        frame = make_frame(np.full((4, 4), 0.5), np.zeros((0, 0), dtype=np.int32), FOOD_LABELS)

        assert depth_frame_to_pointcloud(frame).shape == (0, 3)

    def test_background_only_gives_empty_cloud(self):
        frame = make_frame(np.full((4, 4), 0.5), np.zeros((4, 4), dtype=np.int32), FOOD_LABELS)

        assert depth_frame_to_pointcloud(frame).shape == (0, 3)


class TestCameraPose:
    """World transform with and without rotation."""

    QUARTER_TURN_Z = (0.0, 0.0, np.sin(np.pi / 4), np.cos(np.pi / 4))

    def test_rotation_is_ignored_by_default(self):
        pose = CameraPose(translation=(0.0, 0.0, 1.0), rotation=self.QUARTER_TURN_Z)

        result = pose.transform_points(np.array([[1.0, 0.0, 0.0]]))

        np.testing.assert_allclose(result, [[1.0, 0.0, 1.0]])

    def test_rotation_applied_when_requested(self):
        pose = CameraPose(translation=(0.0, 0.0, 1.0), rotation=self.QUARTER_TURN_Z)

        result = pose.transform_points(np.array([[1.0, 0.0, 0.0]]), apply_rotation=True)

        np.testing.assert_allclose(result, [[0.0, 1.0, 1.0]], atol=1e-12)

    def test_zero_quaternion_is_identity(self):
        pose = CameraPose(rotation=(0.0, 0.0, 0.0, 0.0))

        np.testing.assert_allclose(pose.rotation_matrix(), np.eye(3))


class TestFusePointClouds:
    """Concatenation and 2-sigma outlier removal."""

    def test_small_clouds_are_returned_unfiltered(self):
        top = np.array([[0.0, 0.0, 0.0], [10.0, 10.0, 10.0]])
        side = np.array([[0.1, 0.1, 0.1]])

        fused = fuse_point_clouds(top, side)

        assert len(fused) == 3

    def test_far_outliers_are_removed(self):
        rng = np.random.default_rng(0)
        top = rng.normal(0.0, 0.01, size=(300, 3))
        side = np.vstack([rng.normal(0.0, 0.01, size=(300, 3)), [[1.0, 1.0, 1.0]]])

        fused = fuse_point_clouds(top, side)

        assert not np.any(np.all(np.isclose(fused, [1.0, 1.0, 1.0]), axis=1))
        assert len(fused) < 601

    def test_standard_deviation_never_increases(self):
        rng = np.random.default_rng(42)
        top = rng.normal([0.0, 0.0, 0.3], 0.02, size=(500, 3))
        side = np.vstack([
            rng.normal([0.0, 0.0, 0.3], 0.02, size=(500, 3)),
            rng.uniform(-0.5, 0.5, size=(20, 3))
        ])
        combined = np.vstack([top, side])

        fused = fuse_point_clouds(top, side)

        assert np.all(fused.std(axis=0) <= combined.std(axis=0))

    def test_filter_is_order_independent(self):
        rng = np.random.default_rng(7)
        top = rng.normal(0.0, 0.01, size=(100, 3))
        side = rng.normal(0.0, 0.05, size=(100, 3))

        a = fuse_point_clouds(top, side)
        b = fuse_point_clouds(side, top)

        np.testing.assert_allclose(
            a[np.lexsort(a.T)],
            b[np.lexsort(b.T)]
        )

    def test_constant_axis_keeps_points(self):
        points = np.column_stack([np.linspace(0, 0.01, 20), np.linspace(0, 0.01, 20), np.full(20, 0.3)])

        fused = fuse_point_clouds(points, np.empty((0, 3)))

        assert len(fused) > 0

    def test_empty_inputs(self):
        assert fuse_point_clouds(np.empty((0, 3)), np.empty((0, 3))).shape == (0, 3)
