"""
Tests for pixel synthesis and burned-in text overlays.

Test strategy:
1. Buffer length is exact for every modality and bit depth
2. Patterns have the expected coarse structure (disc, bands, spots, field)
3. Every glyph pixel of a text block shares one level; the backing never
   overwrites glyphs
4. Overlay lines and characters that do not fit are dropped or clipped
"""
import numpy as np
import pytest

from dicomsynth.modality import Modality
from dicomsynth.pixels import synthesis
from dicomsynth.pixels.font import GLYPH_HEIGHT, GLYPH_WIDTH, glyph_mask, text_mask, text_width
from dicomsynth.pixels.overlay import block_scale, render_centered_label, render_text_block
from dicomsynth.pixels.synthesis import (
    overlay_lines,
    pack_samples,
    render_pattern,
    synthesize,
    synthesize_image,
    unpack_samples,
)

PIXEL_MODALITIES = [m for m in Modality if m is not Modality.SR]


# ═══════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def noisy_raster(rng):
    return rng.integers(0, 4096, size=(200, 300)).astype(np.int64)


# ═══════════════════════════════════════════════════════════════════════════════
# FONT
# ═══════════════════════════════════════════════════════════════════════════════

class TestFont:

    def test_glyph_shape(self):
        assert glyph_mask("A").shape == (GLYPH_HEIGHT, GLYPH_WIDTH)
        assert glyph_mask("A", 3).shape == (GLYPH_HEIGHT * 3, GLYPH_WIDTH * 3)

    def test_lowercase_uses_uppercase_glyph(self):
        assert np.array_equal(glyph_mask("q"), glyph_mask("Q"))

    def test_unknown_character_is_a_box(self):
        mask = glyph_mask("é")
        assert mask[0].all() and mask[-1].all()
        assert mask[:, 0].all() and mask[:, -1].all()

    def test_space_is_blank(self):
        assert not glyph_mask(" ").any()

    def test_text_width(self):
        assert text_width("") == 0
        assert text_width("AB") == 11
        assert text_mask("AB", 2).shape == (14, 22)


# ═══════════════════════════════════════════════════════════════════════════════
# TEXT BLOCK
# ═══════════════════════════════════════════════════════════════════════════════

class TestTextBlock:

    LINES = ["Patient: SYNTHETIC^PATIENT^0001", "Study UID: 1.2.3.4", "Instance: 1 of 3"]

    def test_glyph_pixels_share_one_level(self, noisy_raster):
        result = render_text_block(noisy_raster, self.LINES, 4095)
        assert result.mask.any()
        assert set(np.unique(noisy_raster[result.mask])) == {4095}
        assert result.level == 4095

    def test_backing_fills_only_non_glyph_pixels(self, noisy_raster):
        result = render_text_block(noisy_raster, self.LINES, 4095)
        left, top, right, bottom = result.rect
        region = noisy_raster[top:bottom, left:right]
        glyphs = result.mask[top:bottom, left:right]
        assert (region[~glyphs] == 0).all()
        assert (region[glyphs] == 4095).all()

    def test_pixels_outside_block_untouched(self, noisy_raster):
        before = noisy_raster.copy()
        result = render_text_block(noisy_raster, self.LINES, 4095)
        left, top, right, bottom = result.rect
        outside = np.ones(before.shape, dtype=bool)
        outside[top:bottom, left:right] = False
        assert np.array_equal(before[outside], noisy_raster[outside])

    def test_lines_below_raster_dropped(self, rng):
        raster = rng.integers(0, 256, size=(50, 300))
        result = render_text_block(raster, ["ONE", "TWO", "THREE"], 255)
        assert result.lines_drawn == 2
        assert not result.mask[47:].any()

    def test_characters_past_right_edge_clipped(self, rng):
        raster = rng.integers(0, 256, size=(100, 40))
        result = render_text_block(raster, ["WWWWWWWW"], 255)
        assert result.lines_drawn == 1
        # Glyphs at x=20, 26, 32 fit; the one at 38 would end past column 40
        assert result.mask[:, 32:37].any()
        assert not result.mask[:, 37:].any()

    def test_nothing_fits(self):
        raster = np.full((10, 10), 7, dtype=np.int64)
        result = render_text_block(raster, ["HELLO"], 255)
        assert result.lines_drawn == 0
        assert result.rect == (0, 0, 0, 0)
        assert (raster == 7).all()

    def test_deterministic(self):
        first = np.full((120, 200), 100, dtype=np.int64)
        second = first.copy()
        render_text_block(first, self.LINES, 255)
        render_text_block(second, self.LINES, 255)
        assert np.array_equal(first, second)

    def test_one_bit_raster(self):
        raster = np.ones((100, 200), dtype=np.int64)
        result = render_text_block(raster, ["AB"], 1)
        assert set(np.unique(raster[result.mask])) == {1}
        left, top, right, bottom = result.rect
        assert (raster[top:bottom, left:right][~result.mask[top:bottom, left:right]] == 0).all()

    @pytest.mark.parametrize("size,scale", [(512, 1), (2047, 1), (2048, 2), (4096, 4)])
    def test_block_scale(self, size, scale):
        assert block_scale(size, size) == scale


class TestCenteredLabel:

    def test_label_centred_at_max(self):
        raster = np.zeros((200, 200))
        mask = render_centered_label(raster, "CT", 255)
        rows, cols = np.nonzero(mask)
        assert (raster[mask] == 255).all()
        assert abs((rows.min() + rows.max()) / 2 - 100) <= 2
        assert abs((cols.min() + cols.max()) / 2 - 100) <= 2

    def test_label_too_large(self):
        assert render_centered_label(np.zeros((5, 5)), "CT", 255) is None


# ═══════════════════════════════════════════════════════════════════════════════
# SYNTHESIS
# ═══════════════════════════════════════════════════════════════════════════════

class TestPacking:

    def test_little_endian_two_byte_samples(self):
        assert pack_samples(np.array([[0x1234, 1]]), 16) == b"\x34\x12\x01\x00"

    def test_values_clamped_to_bit_range(self):
        assert pack_samples(np.array([[0x1234, -5]]), 12) == b"\xff\x0f\x00\x00"

    def test_one_byte_samples(self):
        assert pack_samples(np.array([[1, 0, 3]]), 1) == b"\x01\x00\x01"

    def test_unpack_inverse(self, rng):
        raster = rng.integers(0, 4096, size=(5, 7))
        assert np.array_equal(unpack_samples(pack_samples(raster, 12), 7, 5, 12), raster)


class TestSynthesize:

    @pytest.mark.parametrize("modality", PIXEL_MODALITIES)
    @pytest.mark.parametrize("bits", [1, 8, 12, 16])
    def test_buffer_length_and_range(self, modality, bits, rng):
        buffer = synthesize(modality, 33, 17, bits, rng)
        assert len(buffer) == 33 * 17 * (-(-bits // 8))
        samples = unpack_samples(buffer, 33, 17, bits)
        assert samples.max() <= (1 << bits) - 1

    def test_report_has_no_pixels(self, rng):
        assert synthesize("SR", 64, 64, 8, rng) is None

    def test_unknown_modality_uses_generic_noise(self, rng, caplog):
        buffer = synthesize("XA", 20, 10, 8, rng)
        assert len(buffer) == 200
        assert "generic noise" in caplog.text

    @pytest.mark.parametrize("width,height,bits", [(0, 8, 8), (8, 0, 8), (8, 8, 0), (8, 8, 17)])
    def test_invalid_geometry(self, width, height, bits):
        with pytest.raises(ValueError):
            synthesize("CT", width, height, bits)

    def test_same_seed_same_buffer(self):
        first = synthesize("MR", 40, 40, 12, np.random.default_rng(9))
        second = synthesize("MR", 40, 40, 12, np.random.default_rng(9))
        assert first == second

    def test_default_rng_used_when_omitted(self):
        assert len(synthesize("CT", 8, 8, 8)) == 64


class TestPatterns:

    def test_ct_disc_brighter_than_air(self, rng):
        raster = render_pattern("CT", 64, 64, 12, rng)
        assert raster[32, 32] > 2500
        assert raster[0, 0] < 400

    def test_ultrasound_near_field_brighter(self, rng):
        raster = render_pattern("US", 64, 128, 8, rng)
        assert raster[:16].mean() > raster[-32:].mean()

    def test_nm_hot_spot(self, rng):
        raster = render_pattern("NM", 128, 128, 16, rng)
        assert raster[32, 32] > 10 * np.median(raster)

    def test_pt_uses_its_own_layout(self, rng):
        nm = render_pattern("NM", 100, 100, 16, np.random.default_rng(1))
        pt = render_pattern("PT", 100, 100, 16, np.random.default_rng(1))
        assert not np.array_equal(nm, pt)

    def test_rt_field(self, rng):
        raster = render_pattern("RT", 100, 100, 16, rng)
        assert raster[50, 50] > 0.7 * 65535
        assert raster[2, 2] < 0.15 * 65535

    def test_radiography_label(self, rng):
        raster = render_pattern("CR", 256, 256, 8, rng)
        assert (raster == 255).sum() > 100

    def test_mammography_mid_grey(self, rng):
        raster = render_pattern("MG", 200, 200, 14, rng)
        assert abs(raster.mean() / 16383 - 0.5) < 0.05


class TestSynthesizeImage:

    def test_buffer_matches_geometry(self, make_records, rng):
        patient, study, series, image = make_records("CT", width=300, height=160, bits=12)
        buffer = synthesize_image(patient, study, series, image, 3, rng)
        assert len(buffer) == image.geometry.frame_length
        raster = unpack_samples(buffer, 300, 160, 12)
        assert (raster == 4095).any()

    def test_report_returns_none(self, make_records, rng):
        patient, study, series, image = make_records("SR")
        assert synthesize_image(patient, study, series, image, 1, rng) is None

    def test_overlay_lines(self, make_records):
        patient, study, series, image = make_records("CT", instance=2)
        lines = overlay_lines(patient, study, series, image, 3)
        assert f"Patient: {patient.name}" in lines
        assert f"Study UID: {study.study_uid}" in lines
        assert f"Series UID: {series.series_uid}" in lines
        assert "Instance: 2 of 3" in lines
        assert "Modality: CT" in lines
        assert lines[-1] == synthesis.SIGNATURE_LINE
