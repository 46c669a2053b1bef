"""End-to-end tests: configuration, scene placement, run_once and scheduling."""

import logging

import numpy as np
import pytest

from anamorph.__main__ import main
from anamorph.datatypes import MARKER_EYE, MARKER_REFRACTED, MARKER_VIRTUAL
from anamorph.errors import ConfigError, InvalidGridDimensions
from anamorph.intersection import PlaneTarget, SphericalLens, flat_lens
from anamorph.logging_config import level_for_verbosity, setup_logging
from anamorph.pipeline import AnamorphRunner, run_once
from anamorph.scene import (
    LIVE_RESOLUTION_LIMIT,
    TARGET_BUFFER,
    AnamorphConfig,
    build_scene,
    camera_frame,
    effective_resolution,
    validate_config,
)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestConfig:

    def test_defaults_are_valid(self):
        config = AnamorphConfig()
        assert validate_config(config) is config
        assert config.medium == (1.0, 1.4)

    @pytest.mark.parametrize("cols,rows", [(0, 5), (5, 0), (-2, 3)])
    def test_bad_resolution(self, cols, rows):
        with pytest.raises(InvalidGridDimensions):
            validate_config(AnamorphConfig(cols=cols, rows=rows))

    @pytest.mark.parametrize("changes", [
        {"n2": 0.0},
        {"h_size": -1.0},
        {"screen_height": 0.0},
        {"mesh_distance_threshold": 0.0},
        {"second_ray_offset": -1.0},
        {"virtual_plane_depth": -400.0},
    ])
    def test_bad_values(self, changes):
        with pytest.raises(ConfigError):
            validate_config(AnamorphConfig()._replace(**changes))

    def test_config_error_stops_the_pipeline(self):
        with pytest.raises(ConfigError):
            run_once(AnamorphConfig(cols=0))


class TestEffectiveResolution:

    def test_live_mode_caps_resolution(self):
        config = AnamorphConfig(cols=100, rows=60)
        assert effective_resolution(config, live=True) == (LIVE_RESOLUTION_LIMIT, LIVE_RESOLUTION_LIMIT)
        # the requested values are untouched
        assert (config.cols, config.rows) == (100, 60)

    def test_live_mode_keeps_small_resolution(self):
        assert effective_resolution(AnamorphConfig(cols=12, rows=7), live=True) == (12, 7)

    def test_static_mode_uses_requested(self):
        assert effective_resolution(AnamorphConfig(cols=100, rows=60), live=False) == (100, 60)


class TestScene:

    def test_placement(self):
        config = AnamorphConfig(eye_depth=-200.0, target_depth=800.0)
        scene = build_scene(config)
        np.testing.assert_allclose(scene.eye, [0.0, 0.0, -200.0])
        assert isinstance(scene.lens, SphericalLens)
        assert scene.target.z == 800.0
        assert scene.target.width == config.screen_width + TARGET_BUFFER

    def test_overrides(self):
        lens = flat_lens()
        target = PlaneTarget(z=300.0)
        scene = build_scene(AnamorphConfig(), lens=lens, target=target)
        assert scene.lens is lens
        assert scene.target is target

    def test_invalid_lens_shape(self):
        with pytest.raises(ConfigError):
            build_scene(AnamorphConfig(lens_thickness=5.0))

    def test_camera_frame(self):
        frame = camera_frame(AnamorphConfig(screen_width=300.0, screen_height=200.0, target_depth=500.0))
        assert frame.position == (0.0, 0.0, 490.0)
        assert frame.aspect == pytest.approx(1.5)
        assert frame.ortho_size == 100.0


# ---------------------------------------------------------------------------
# run_once
# ---------------------------------------------------------------------------

def _scenario_config(**changes):
    config = AnamorphConfig(
        eye_depth=-350.0,
        virtual_plane_depth=-10.0,
        h_size=60.0,
        v_size=60.0,
        cols=5,
        rows=5,
        n1=1.0,
        n2=1.4,
        target_depth=500.0,
        mesh_distance_threshold=100.0,
    )
    return config._replace(**changes)


class TestRunOnce:

    def test_flat_lens_scenario(self):
        config = _scenario_config()
        result = run_once(config, scene=build_scene(config, lens=flat_lens()))

        assert len(result.virtual) == 25
        assert len(result.trace.samples) == 25
        for sample in result.trace.samples:
            if sample.ok:
                assert float(sample.point[2]) == pytest.approx(500.0, abs=1e-3)
        assert result.trace.num_hits == 25
        assert result.mesh.num_triangles <= 2 * 4 * 4
        assert result.mesh.num_triangles == 32
        assert len(result.segments) == 3 * 25

    def test_small_threshold_drops_triangles(self):
        config = _scenario_config(mesh_distance_threshold=10.0)
        result = run_once(config, scene=build_scene(config, lens=flat_lens()))
        assert result.mesh.num_triangles == 0
        assert result.mesh.skipped == 32
        assert result.mesh.uvs.shape == (25, 2)

    def test_default_scene(self):
        result = run_once(AnamorphConfig(cols=3, rows=3, mesh_distance_threshold=1000.0))
        assert result.trace.num_hits == 9
        assert result.mesh.num_triangles == 8

    def test_markers(self):
        config = _scenario_config(marker_size=2.5)
        scene = build_scene(config, lens=flat_lens(aperture_radius=20.0))
        result = run_once(config, scene=scene)
        kinds = [m.kind for m in result.markers]
        assert kinds.count(MARKER_VIRTUAL) == 25
        assert kinds.count(MARKER_REFRACTED) == result.trace.num_hits
        assert kinds.count(MARKER_EYE) == 1
        assert all(m.size == 2.5 for m in result.markers)

    def test_markers_and_rays_hidden(self):
        config = _scenario_config(show_markers=False, show_rays=False)
        result = run_once(config, scene=build_scene(config, lens=flat_lens()))
        assert result.markers == []
        assert result.segments == []

    def test_live_run_uses_capped_grid(self, monkeypatch):
        monkeypatch.setattr("anamorph.scene.LIVE_RESOLUTION_LIMIT", 3)
        config = _scenario_config(cols=6, rows=4)
        result = run_once(config, scene=build_scene(config, lens=flat_lens()), live=True)
        assert (result.virtual.cols, result.virtual.rows) == (3, 3)
        assert (config.cols, config.rows) == (6, 4)


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------

class TestRunner:

    def _runner(self, **changes):
        config = _scenario_config(cols=3, rows=3, **changes)
        return AnamorphRunner(config, build_scene(config, lens=flat_lens()))

    def test_static_mode_computes_once(self):
        runner = self._runner(live_mode=False)
        first = runner.update()
        assert runner.update() is first
        runner.invalidate()
        assert runner.update() is not first

    def test_live_mode_recomputes_every_update(self):
        runner = self._runner(live_mode=True)
        first = runner.update()
        second = runner.update()
        assert first is not second
        assert runner.result is second

    def test_update_once_forces_a_pass(self):
        runner = self._runner(live_mode=False)
        first = runner.update()
        assert runner.update_once() is not first

    def test_reconfigure_invalidates(self):
        runner = self._runner(live_mode=False)
        runner.update()
        runner.reconfigure(runner.config._replace(cols=4))
        assert len(runner.update().virtual) == 12

    def test_failed_pass_keeps_previous_result(self):
        runner = self._runner(live_mode=False)
        first = runner.update()
        runner.reconfigure(runner.config._replace(rows=0))
        with pytest.raises(ConfigError):
            runner.update()
        assert runner.result is first


# ---------------------------------------------------------------------------
# Logging / CLI
# ---------------------------------------------------------------------------

class TestCli:

    @pytest.fixture(autouse=True)
    def _reset_package_logger(self):
        yield
        logger = logging.getLogger("anamorph")
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        logging.getLogger("jax").setLevel(logging.NOTSET)

    def test_setup_logging_is_idempotent(self):
        logger = setup_logging(logging.DEBUG)
        setup_logging(logging.DEBUG)
        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG

    def test_verbosity_levels(self):
        assert level_for_verbosity(0) == logging.INFO
        assert level_for_verbosity(1) == logging.DEBUG
        assert level_for_verbosity(3) == logging.DEBUG

    def test_jax_logger_is_quieted(self):
        setup_logging()
        assert logging.getLogger("jax").level == logging.WARNING

    def test_log_file_records_debug_detail(self, tmp_path):
        log_file = tmp_path / "run.log"
        logger = setup_logging(logging.INFO, str(log_file))
        console, file_handler = logger.handlers
        assert console.level == logging.INFO
        assert file_handler.level == logging.DEBUG

        logging.getLogger("anamorph.mesh").debug("cell detail")
        assert "cell detail" in log_file.read_text()

    def test_cli_log_file_gets_mesh_debug(self, tmp_path):
        log_file = tmp_path / "run.log"
        assert main(["--cols", "3", "--rows", "3", "--threshold", "0.5",
                     "--log-file", str(log_file)]) == 0
        text = log_file.read_text()
        assert "Skipped 8 mesh triangles" in text
        assert "DEBUG" in text

    def test_run_and_save(self, tmp_path):
        out = tmp_path / "mesh.npz"
        assert main(["--cols", "3", "--rows", "3", "--threshold", "1000", "-o", str(out)]) == 0
        data = np.load(out)
        assert data["vertices"].shape == (9, 3)
        assert data["uvs"].shape == (9, 2)
        assert data["triangles"].shape == (8, 3)

    def test_bad_config_exit_code(self):
        assert main(["--threshold", "-1"]) == 2
