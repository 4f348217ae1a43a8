"""
Tests for the image preprocessing filters.
"""

from unittest.mock import patch

import numpy as np
import pytest

from ArabicOCR.preprocessor import (
    analyze_quality,
    clean_scan_artifacts,
    denoise,
    enhance_contrast,
    enhance_rtl_contrast,
    improve_character_separation,
    preprocess,
    preprocess_for_rtl,
    sharpen,
    straighten_lines,
    to_rgba,
)
from ArabicOCR.schemas import PreprocessingOptions


def _make_test_image(h=120, w=160):
    """Synthetic RGBA page with text-like dark bars."""
    img = np.full((h, w, 4), 255, dtype=np.uint8)
    img[20:30, 10:150, :3] = 0
    img[50:60, 10:120, :3] = 0
    img[80:90, 30:150, :3] = 0
    return img


def _make_gray_rgba(value, h=20, w=20):
    img = np.full((h, w, 4), 255, dtype=np.uint8)
    img[:, :, :3] = value
    return img


FILTERS = [
    enhance_contrast,
    enhance_rtl_contrast,
    denoise,
    straighten_lines,
    sharpen,
    clean_scan_artifacts,
    improve_character_separation,
]


class TestToRgba:
    def test_grayscale(self):
        result = to_rgba(np.zeros((10, 12), dtype=np.uint8))
        assert result.shape == (10, 12, 4)
        assert (result[:, :, 3] == 255).all()

    def test_rgb(self):
        assert to_rgba(np.zeros((10, 12, 3), dtype=np.uint8)).shape == (10, 12, 4)

    def test_rgba_copied(self):
        img = _make_test_image()
        result = to_rgba(img)
        assert result is not img
        np.testing.assert_array_equal(result, img)

    def test_bad_shape(self):
        with pytest.raises(ValueError):
            to_rgba(np.zeros((4, 4, 5), dtype=np.uint8))


class TestFilterShapes:
    @pytest.mark.parametrize("image_filter", FILTERS)
    def test_shape_and_alpha_preserved(self, image_filter):
        img = _make_test_image()
        img[:, :, 3] = 200
        result = image_filter(img)
        assert result.shape == img.shape
        assert result.dtype == np.uint8
        assert (result[:, :, 3] == 200).all()

    @pytest.mark.parametrize("image_filter", FILTERS)
    def test_input_not_mutated(self, image_filter):
        img = _make_test_image()
        before = img.copy()
        image_filter(img)
        np.testing.assert_array_equal(img, before)

    @pytest.mark.parametrize("image_filter", FILTERS)
    def test_tiny_image(self, image_filter):
        img = _make_gray_rgba(100, h=2, w=2)
        assert image_filter(img).shape == (2, 2, 4)


class TestEnhanceContrast:
    def test_stretches_around_mid_gray(self):
        result = enhance_contrast(_make_gray_rgba(100))
        # (100 - 128) * 1.3 + 128 = 91.6, rounded
        assert result[5, 5, 0] == 92
        assert result[5, 5, 0] == result[5, 5, 1] == result[5, 5, 2]

    def test_clamps(self):
        assert enhance_contrast(_make_gray_rgba(250))[0, 0, 0] == 255
        assert enhance_contrast(_make_gray_rgba(5))[0, 0, 0] == 0

    def test_rtl_darkens_shadows(self):
        standard = enhance_contrast(_make_gray_rgba(100))
        rtl = enhance_rtl_contrast(_make_gray_rgba(100))
        assert rtl[5, 5, 0] < standard[5, 5, 0]

    def test_rtl_highlights(self):
        # (200 - 128) * 1.5 + 128 = 236
        assert enhance_rtl_contrast(_make_gray_rgba(200))[5, 5, 0] == 236


class TestDenoise:
    def test_removes_salt_pixel(self):
        img = _make_gray_rgba(255)
        img[10, 10, :3] = 0
        assert denoise(img)[10, 10, 0] == 255

    def test_border_untouched(self):
        img = _make_gray_rgba(255)
        img[0, 5, :3] = 0
        assert denoise(img)[0, 5, 0] == 0


class TestStraightenLines:
    def test_boosts_light_runs(self):
        result = straighten_lines(_make_gray_rgba(210))
        assert result[5, 5, 0] == 230

    def test_dark_pixels_unchanged(self):
        result = straighten_lines(_make_gray_rgba(50))
        assert result[5, 5, 0] == 50


class TestSharpen:
    def test_flat_region_brightened_by_kernel_sum(self):
        # Kernel weights sum to 4.2 - 4 * 0.8 = 1.0
        result = sharpen(_make_gray_rgba(100))
        assert result[5, 5, 0] == 100

    def test_edge_enhanced(self):
        img = _make_gray_rgba(200)
        img[:, 10:, :3] = 50
        result = sharpen(img)
        assert result[5, 9, 0] == 255
        assert result[5, 10, 0] < 50


class TestCleanScanArtifacts:
    def test_isolated_dark_pixel_removed(self):
        img = _make_gray_rgba(255)
        img[10, 10, :3] = 0
        assert clean_scan_artifacts(img)[10, 10, 0] == 255

    def test_stroke_kept(self):
        img = _make_gray_rgba(255)
        img[8:13, 8:13, :3] = 0
        assert clean_scan_artifacts(img)[10, 10, 0] == 0


class TestImproveCharacterSeparation:
    def test_lightens_thin_bridge(self):
        img = _make_gray_rgba(255)
        img[10, 5:15, :3] = 100
        result = improve_character_separation(img)
        assert result[10, 8, 0] == 140

    def test_thick_stroke_kept(self):
        img = _make_gray_rgba(255)
        img[8:13, 5:15, :3] = 100
        assert improve_character_separation(img)[10, 8, 0] == 100


class TestPreprocess:
    def test_full_pipeline_keeps_shape(self):
        img = _make_test_image()
        assert preprocess(img).shape == img.shape

    def test_accepts_rgb(self):
        img = _make_test_image()[:, :, :3].copy()
        assert preprocess(img).shape == (120, 160, 4)

    def test_all_disabled_is_identity(self):
        img = _make_test_image()
        options = PreprocessingOptions(
            enhance_contrast=False,
            denoise_image=False,
            straighten_lines=False,
            sharpen_text=False,
        )
        np.testing.assert_array_equal(preprocess(img, options), img)

    def test_failure_returns_original(self):
        img = _make_test_image()
        with patch("ArabicOCR.preprocessor.denoise", side_effect=RuntimeError("boom")):
            result = preprocess(img)
        assert result is img

    def test_rtl_variant_keeps_shape(self):
        img = _make_test_image()
        assert preprocess_for_rtl(img).shape == img.shape

    def test_rtl_failure_returns_original(self):
        img = _make_test_image()
        with patch("ArabicOCR.preprocessor.sharpen", side_effect=RuntimeError("boom")):
            assert preprocess_for_rtl(img) is img


class TestAnalyzeQuality:
    def test_bounds(self):
        rng = np.random.default_rng(0)
        for img in [
            _make_test_image(),
            _make_gray_rgba(128),
            rng.integers(0, 256, size=(50, 50, 4), dtype=np.uint8),
        ]:
            quality = analyze_quality(img)
            for value in (quality.contrast, quality.sharpness, quality.noise):
                assert 0.0 <= value <= 1.0

    def test_flat_image(self):
        quality = analyze_quality(_make_gray_rgba(128))
        assert quality.contrast == 0.0
        assert quality.sharpness == 0.0
        assert quality.noise == 0.0
        assert quality.suitability == "poor"

    def test_full_range(self):
        assert analyze_quality(_make_test_image()).contrast == pytest.approx(1.0)

    def test_noisy_image_is_poor(self):
        rng = np.random.default_rng(1)
        img = rng.integers(0, 256, size=(60, 60, 4), dtype=np.uint8)
        assert analyze_quality(img).suitability == "poor"
