"""
Tests for kltrack core, image, and I/O utilities.
"""

import json

import pytest
import numpy as np


class TestKltConfig:
    """Tests for KltConfig."""

    def test_defaults(self):
        """Test default parameters."""
        from kltrack.core.config import KltConfig

        config = KltConfig()
        assert config.window_size == 7
        assert config.half_window_size == 3
        assert config.max_iterations == 10
        assert config.min_update_squared_distance == pytest.approx(0.03)
        assert config.min_feature_distance == pytest.approx(10.0)
        assert config.min_trackness is None
        assert config.validate() is config

    @pytest.mark.parametrize("overrides", [
        {"window_size": 6},
        {"window_size": 0},
        {"window_size": -3},
        {"max_iterations": 0},
        {"pyramid_levels": 0},
        {"min_determinant": -1.0},
        {"min_feature_distance": -1.0},
        {"min_update_squared_distance": -0.1},
    ])
    def test_invalid_values(self, overrides):
        """Test that malformed parameters raise ConfigurationError."""
        from kltrack.core.config import ConfigurationError, KltConfig

        with pytest.raises(ConfigurationError):
            KltConfig(**overrides).validate()

    def test_configuration_error_is_value_error(self):
        """Test that callers can catch ValueError."""
        from kltrack.core.config import ConfigurationError

        assert issubclass(ConfigurationError, ValueError)

    def test_save_load(self, tmp_path):
        """Test JSON round trip."""
        from kltrack.core.config import KltConfig

        path = tmp_path / "klt.json"
        KltConfig(window_size=9, min_trackness=0.5, use_aligned=True).save(path)

        loaded = KltConfig.load(path)
        assert loaded.window_size == 9
        assert loaded.min_trackness == 0.5
        assert loaded.use_aligned is True

    def test_load_ignores_unknown_keys(self, tmp_path):
        """Test that extra keys in the file are ignored."""
        from kltrack.core.config import load_config

        path = tmp_path / "klt.json"
        path.write_text(json.dumps({"window_size": 5, "comment": "fast"}))
        assert load_config(path).window_size == 5

    def test_load_invalid_file(self, tmp_path):
        """Test that invalid values in a file are rejected."""
        from kltrack.core.config import ConfigurationError, load_config

        path = tmp_path / "klt.json"
        path.write_text(json.dumps({"window_size": 4}))
        with pytest.raises(ConfigurationError):
            load_config(path)

        path.write_text(json.dumps({"max_iterations": "many"}))
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_load_missing_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        from kltrack.core.config import load_config

        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.json")

    def test_env_config(self, monkeypatch):
        """Test reading KLT_* environment variables."""
        from kltrack.core.config import get_env_config

        monkeypatch.setenv("KLT_WINDOW_SIZE", "9")
        monkeypatch.setenv("KLT_USE_ALIGNED", "true")
        env = get_env_config()
        assert env["window_size"] == "9"
        assert env["use_aligned"] == "true"

    def test_resolve_precedence(self, tmp_path, monkeypatch):
        """Test defaults < file < environment < overrides."""
        from kltrack.core.config import KltConfig, resolve_config

        path = tmp_path / "klt.json"
        KltConfig(window_size=5, max_iterations=15, pyramid_levels=2).save(path)
        monkeypatch.setenv("KLT_MAX_ITERATIONS", "25")
        monkeypatch.setenv("KLT_USE_ALIGNED", "yes")
        monkeypatch.setenv("KLT_MIN_TRACKNESS", "none")

        config = resolve_config(path, pyramid_levels=4, window_size=None)
        assert config.window_size == 5
        assert config.max_iterations == 25
        assert config.pyramid_levels == 4
        assert config.use_aligned is True
        assert config.min_trackness is None


class TestImagePyramid:
    """Tests for ImagePyramid."""

    def test_level_sizes(self):
        """Test that each level halves the previous one."""
        from kltrack.image import ImagePyramid

        pyramid = ImagePyramid.from_image(np.zeros((80, 100), np.float32), levels=3)
        assert pyramid.level_count() == 3
        assert len(pyramid) == 3
        assert (pyramid.width(0), pyramid.height(0)) == (100, 80)
        assert (pyramid.width(1), pyramid.height(1)) == (50, 40)
        assert (pyramid.width(2), pyramid.height(2)) == (25, 20)
        assert pyramid.gradient_x(2).shape == pyramid.intensity(2).shape
        assert pyramid.gradient_y(1).shape == (40, 50)

    def test_level_access(self):
        """Test that a level bundles the planes returned by the accessors."""
        from kltrack.image import ImagePyramid, PyramidLevel

        pyramid = ImagePyramid.from_image(np.zeros((32, 48), np.float32), levels=2)
        level = pyramid.level(1)
        assert isinstance(level, PyramidLevel)
        assert level.shape == (16, 24)
        assert level.intensity is pyramid.intensity(1)
        assert level.gradient_y is pyramid.gradient_y(1)

    def test_planes_are_read_only(self):
        """Test that pyramid planes cannot be written."""
        from kltrack.image import ImagePyramid

        pyramid = ImagePyramid.from_image(np.zeros((32, 32), np.float32), levels=2)
        with pytest.raises(ValueError):
            pyramid.intensity(0)[0, 0] = 1.0
        with pytest.raises(ValueError):
            pyramid.gradient_x(1)[0, 0] = 1.0

    def test_uint8_is_normalized(self):
        """Test that integer images are scaled to [0, 1]."""
        from kltrack.image import ImagePyramid

        image = np.full((16, 16), 255, np.uint8)
        pyramid = ImagePyramid.from_image(image, levels=1, sigma=0.0)
        assert pyramid.intensity(0).dtype == np.float32
        assert pyramid.intensity(0).max() == pytest.approx(1.0)

    def test_bgr_input(self):
        """Test that colour images are converted to grayscale."""
        from kltrack.image import ImagePyramid

        image = np.zeros((24, 32, 3), np.uint8)
        pyramid = ImagePyramid.from_image(image, levels=2)
        assert pyramid.intensity(0).shape == (24, 32)

    def test_gradients_of_ramp(self):
        """Test that gradients measure the per-pixel slope."""
        from kltrack.image import ImagePyramid

        ramp = np.tile(np.arange(20, dtype=np.float32) * 0.01, (20, 1))
        pyramid = ImagePyramid.from_image(ramp, levels=1, sigma=0.0)
        assert pyramid.gradient_x(0)[10, 10] == pytest.approx(0.01, abs=1e-6)
        assert pyramid.gradient_y(0)[10, 10] == pytest.approx(0.0, abs=1e-6)

    def test_too_small(self):
        """Test that too many levels for the image size are rejected."""
        from kltrack.core.config import ConfigurationError
        from kltrack.image import ImagePyramid

        with pytest.raises(ConfigurationError):
            ImagePyramid.from_image(np.zeros((2, 2), np.float32), levels=4)
        with pytest.raises(ConfigurationError):
            ImagePyramid.from_image(np.zeros((8, 8), np.float32), levels=0)

    def test_implements_protocol(self):
        """Test that ImagePyramid satisfies PyramidProvider."""
        from kltrack.core.base import PyramidProvider
        from kltrack.image import ImagePyramid

        pyramid = ImagePyramid.from_image(np.zeros((16, 16), np.float32), levels=1)
        assert isinstance(pyramid, PyramidProvider)


class TestSampler:
    """Tests for bilinear and integer sampling."""

    def test_bilinear(self):
        """Test interpolation between four pixels."""
        from kltrack.image.sampler import sample_linear

        plane = np.array([[0.0, 1.0], [2.0, 3.0]], dtype=np.float32)
        assert sample_linear(plane, 0.5, 0.5) == pytest.approx(1.5)
        assert sample_linear(plane, 0.0, 0.5) == pytest.approx(0.5)
        assert sample_linear(plane, 1.0, 0.0) == pytest.approx(2.0)

    def test_clamps_outside(self):
        """Test that coordinates outside the plane use the edge."""
        from kltrack.image.sampler import sample_linear

        plane = np.array([[0.0, 1.0], [2.0, 3.0]], dtype=np.float32)
        assert sample_linear(plane, -1.0, -1.0) == pytest.approx(0.0)
        assert sample_linear(plane, 5.0, 5.0) == pytest.approx(3.0)

    def test_array_input(self):
        """Test that array coordinates keep their shape."""
        from kltrack.image.sampler import sample_linear

        plane = np.arange(16, dtype=np.float32).reshape(4, 4)
        rows = np.array([[0.0, 1.0], [2.0, 3.0]])
        cols = np.array([[0.0, 1.0], [2.0, 3.0]])
        values = sample_linear(plane, rows, cols)
        assert values.shape == (2, 2)
        assert values[1, 1] == pytest.approx(15.0)

    def test_sample_window(self):
        """Test that windows are indexed [row offset, col offset]."""
        from kltrack.image.sampler import sample_window

        plane = np.arange(100, dtype=np.float32).reshape(10, 10)
        window = sample_window(plane, 5.0, 4.0, 1)
        assert window.shape == (3, 3)
        assert window[1, 1] == pytest.approx(45.0)
        assert window[0, 2] == pytest.approx(36.0)

    def test_contains(self):
        """Test the bounds predicate."""
        from kltrack.image.sampler import contains, window_inside

        plane = np.zeros((10, 20))
        assert contains(plane, 0, 0)
        assert contains(plane, 9.5, 19.5)
        assert not contains(plane, 10, 0)
        assert not contains(plane, -0.1, 5)
        assert window_inside(plane, 3, 3, 3)
        assert not window_inside(plane, 2, 3, 3)
        assert not window_inside(plane, 17, 3, 3)

    def test_pixel_window(self):
        """Test direct pixel lookup."""
        from kltrack.image.sampler import pixel_window

        plane = np.arange(100, dtype=np.float32).reshape(10, 10)
        window = pixel_window(plane, 5, 4, 1)
        assert window.dtype == np.float64
        assert window[1, 1] == 45.0
        assert window[2, 0] == 54.0


class TestBoxFilter:
    """Tests for the box filter."""

    def test_sum_not_average(self):
        """Test that the box filter sums the window."""
        from kltrack.image.filters import box_filter

        plane = np.ones((9, 9), np.float32)
        summed = box_filter(plane, 3)
        assert summed.dtype == np.float64
        assert summed[4, 4] == pytest.approx(9.0)
        assert summed[0, 0] == pytest.approx(9.0)


class TestFeatureIO:
    """Tests for feature list I/O utilities."""

    def test_parse_line(self):
        """Test parsing a full line."""
        from kltrack.tracking import Feature
        from kltrack.tracking.track_io import parse_feature_line

        assert parse_feature_line("12.5 -3 0.25") == Feature(12.5, -3.0, 0.25)

    def test_parse_without_trackness(self):
        """Test parsing a position-only line."""
        from kltrack.tracking.track_io import parse_feature_line

        feature = parse_feature_line("4 5")
        assert feature.position == (4.0, 5.0)
        assert feature.trackness == 0.0

    def test_parse_exponent(self):
        """Test parsing exponent notation."""
        from kltrack.tracking.track_io import parse_feature_line

        assert parse_feature_line("1.0 2.0 1e-05").trackness == pytest.approx(1e-5)

    def test_parse_empty_and_comment(self):
        """Test that empty lines and comments return None."""
        from kltrack.tracking.track_io import parse_feature_line

        assert parse_feature_line("") is None
        assert parse_feature_line("# header") is None
        assert parse_feature_line("not a feature") is None

    def test_round_trip(self, tmp_path):
        """Test writing then reading a feature file."""
        from kltrack.tracking import Feature
        from kltrack.tracking.track_io import read_feature_file, write_feature_file

        features = [Feature(1.0, 2.0, 0.5), Feature(10.25, 3.75, 1.5e-3)]
        path = tmp_path / "features.txt"
        write_feature_file(path, features, header="frame 1")

        assert path.read_text().startswith("# frame 1")
        assert read_feature_file(path) == features

    def test_read_missing(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        from kltrack.tracking.track_io import read_feature_file

        with pytest.raises(FileNotFoundError):
            read_feature_file(tmp_path / "missing.txt")


class TestFeature:
    """Tests for the Feature value."""

    def test_moved_to_keeps_trackness(self):
        """Test that moving creates a new feature with the same trackness."""
        from kltrack.tracking import Feature

        feature = Feature(1.0, 2.0, 3.0)
        moved = feature.moved_to(4.0, 5.0)
        assert moved == Feature(4.0, 5.0, 3.0)
        assert feature.position == (1.0, 2.0)

    def test_array_conversion(self):
        """Test conversion to and from position arrays."""
        from kltrack.tracking import Feature, features_from_array, features_to_array

        features = [Feature(1.0, 2.0, 0.5), Feature(3.0, 4.0, 0.25)]
        points = features_to_array(features)
        assert points.shape == (2, 2)
        assert features_from_array(points.reshape(-1, 1, 2), [0.5, 0.25]) == features
        assert features_to_array([]).shape == (0, 2)


class TestCommandLine:
    """Tests for the command line interface."""

    def _write_image(self, path, shift=(0, 0)):
        import cv2

        image = np.zeros((96, 96), np.uint8)
        for x, y in [(24, 24), (60, 30), (40, 64), (70, 70)]:
            cv2.rectangle(
                image,
                (x + shift[0], y + shift[1]),
                (x + shift[0] + 6, y + shift[1] + 6),
                255,
                -1,
            )
        cv2.imwrite(str(path), image)

    def test_detect(self, tmp_path):
        """Test the detect command writes a feature file."""
        from kltrack.__main__ import main
        from kltrack.tracking.track_io import read_feature_file

        image_path = tmp_path / "a.png"
        out_path = tmp_path / "a.txt"
        self._write_image(image_path)

        assert main(["detect", str(image_path), "-o", str(out_path)]) == 0
        assert len(read_feature_file(out_path)) > 0

    def test_track(self, tmp_path):
        """Test the track command."""
        from kltrack.__main__ import main

        a = tmp_path / "a.png"
        b = tmp_path / "b.png"
        out_path = tmp_path / "b.txt"
        self._write_image(a)
        self._write_image(b, shift=(1, 1))

        assert main(["track", str(a), str(b), "-o", str(out_path), "-j", "2"]) == 0
        assert out_path.exists()

    def test_missing_image(self, tmp_path):
        """Test that a missing image is reported, not raised."""
        from kltrack.__main__ import main

        assert main(["detect", str(tmp_path / "nope.png")]) == 2

    def test_bad_config(self):
        """Test that invalid parameters are reported."""
        from kltrack.__main__ import main

        assert main(["detect", "whatever.png", "-w", "4"]) == 2


class TestPackage:
    """Tests for package-level imports."""

    def test_package_level_import(self):
        """Test main classes available at package level."""
        import kltrack

        assert hasattr(kltrack, 'ImagePyramid')
        assert hasattr(kltrack, 'FeatureDetector')
        assert hasattr(kltrack, 'PyramidalTracker')
        assert hasattr(kltrack, 'KltTracker')
        assert kltrack.__version__


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
