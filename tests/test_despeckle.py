"""Tests for alpha despeckling."""

import numpy as np

from iconpost.matte.despeckle import box_blur, despeckle


class TestBoxBlur:
    """Tests for the in-bounds box blur."""

    def test_constant_stays_constant_at_borders(self):
        """Edge pixels average only their in-bounds neighbours."""
        alpha = np.full((10, 12), 255, dtype=np.uint8)

        blurred = box_blur(alpha)

        assert np.all(blurred == 255)

    def test_single_pixel_spreads(self):
        alpha = np.zeros((5, 5), dtype=np.uint8)
        alpha[2, 2] = 90

        blurred = box_blur(alpha)

        assert blurred[2, 2] == 10
        assert blurred[1, 1] == 10
        assert blurred[0, 0] == 0


class TestDespeckle:
    """Tests for blur + re-harden rounds."""

    def test_zero_rounds_is_identity(self):
        """No rounds leaves every value untouched."""
        rng = np.random.default_rng(0)
        alpha = rng.integers(0, 256, size=(32, 32), dtype=np.uint8)
        original = alpha.copy()

        result = despeckle(alpha, 0)

        assert np.array_equal(result, original)

    def test_works_in_place(self):
        alpha = np.zeros((16, 16), dtype=np.uint8)

        result = despeckle(alpha, 1)

        assert result is alpha

    def test_removes_isolated_speckle(self):
        """A lone opaque pixel in a clear field disappears."""
        alpha = np.zeros((20, 20), dtype=np.uint8)
        alpha[10, 10] = 255

        despeckle(alpha, 1)

        assert alpha[10, 10] == 0

    def test_fills_pinhole(self):
        """A lone clear pixel inside an opaque region is filled."""
        alpha = np.full((20, 20), 255, dtype=np.uint8)
        alpha[10, 10] = 0

        despeckle(alpha, 1)

        assert alpha[10, 10] == 255

    def test_solid_region_interior_survives(self):
        alpha = np.zeros((30, 30), dtype=np.uint8)
        alpha[5:25, 5:25] = 255

        despeckle(alpha, 3)

        assert alpha[15, 15] == 255
        assert alpha[0, 0] == 0
