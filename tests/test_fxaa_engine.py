import sys
import os
import dataclasses
import numpy as np
import pytest
from numba.core.errors import NumbaError

# Add the root directory to the Python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import fxaa_engine
from config import BlendPolicy, FilterConfig, UNIFORM_WEIGHTS
from fxaa_engine import FxaaPassOrchestrator, OrchestratorState, apply_fxaa, run_fxaa_pass
from luminance import compute_luminance_map
from logger import Logger


@pytest.fixture(params=["numba", "numpy"])
def base_config(request):
    """Single-threaded config for each kernel implementation."""
    return FilterConfig(pass_count=1, thread_count=1, use_numba_jit=(request.param == "numba"))


@pytest.fixture
def vertical_edge_image():
    """5x5, columns 0-1 black, columns 2-4 white."""
    image = np.zeros((5, 5, 3), dtype=np.uint8)
    image[:, 2:] = 255
    return image


@pytest.fixture
def noisy_image():
    rng = np.random.default_rng(1234)
    image = rng.integers(0, 256, size=(40, 31, 3), dtype=np.uint8)
    # Add a hard diagonal so there are strong edges as well as noise
    for i in range(31):
        image[i:, i] = 255
    return image


def border_mask(height, width):
    mask = np.zeros((height, width), dtype=bool)
    mask[0, :] = mask[-1, :] = True
    mask[:, 0] = mask[:, -1] = True
    return mask


def test_scenario_single_bright_pixel(base_config):
    image = np.zeros((3, 3, 3), dtype=np.uint8)
    image[1, 1] = 255

    result = apply_fxaa(image, base_config)

    assert np.all(result[1, 1] <= 255)
    assert np.all(result[1, 1] >= 250)
    mask = border_mask(3, 3)
    np.testing.assert_array_equal(result[mask], image[mask])


def test_scenario_single_bright_pixel_uniform_weights(base_config):
    image = np.zeros((3, 3, 3), dtype=np.uint8)
    image[1, 1] = 255
    config = dataclasses.replace(base_config, luminance_weights=UNIFORM_WEIGHTS)

    result = apply_fxaa(image, config)
    np.testing.assert_array_equal(result[1, 1], [250, 250, 250])


def test_scenario_vertical_edge(base_config, vertical_edge_image):
    result = apply_fxaa(vertical_edge_image, base_config)

    # Pixels on either side of the edge are blended
    assert np.all(result[1:4, 2] == 194)
    assert np.all(result[1:4, 1] == 60)
    # Column 3 sits entirely inside the white region
    np.testing.assert_array_equal(result[1:4, 3], vertical_edge_image[1:4, 3])
    mask = border_mask(5, 5)
    np.testing.assert_array_equal(result[mask], vertical_edge_image[mask])


def test_scenario_vertical_edge_sigmoid(base_config, vertical_edge_image):
    config = dataclasses.replace(base_config, blend_policy=BlendPolicy.SIGMOID_CENTER_BLEND)
    result = apply_fxaa(vertical_edge_image, config)

    assert np.all(result[1:4, 2] == 223)
    assert np.all(result[1:4, 1] == 32)
    np.testing.assert_array_equal(result[1:4, 3], vertical_edge_image[1:4, 3])


def test_zero_passes_returns_input_unchanged(base_config, noisy_image):
    orchestrator = FxaaPassOrchestrator(dataclasses.replace(base_config, pass_count=0))
    result = orchestrator.run(noisy_image)

    np.testing.assert_array_equal(result, noisy_image)
    assert result is not noisy_image
    assert orchestrator.state is OrchestratorState.DONE
    assert orchestrator.current_pass == 0


@pytest.mark.parametrize("shape", [(2, 2, 3), (2, 10, 4), (10, 1, 3)])
def test_image_without_interior_is_returned_unchanged(base_config, shape):
    image = np.random.default_rng(0).integers(0, 256, size=shape, dtype=np.uint8)
    orchestrator = FxaaPassOrchestrator(base_config)
    result = orchestrator.run(image)
    np.testing.assert_array_equal(result, image)
    assert orchestrator.state is OrchestratorState.DONE


def test_input_buffer_is_not_modified(base_config, noisy_image):
    original = noisy_image.copy()
    apply_fxaa(noisy_image, dataclasses.replace(base_config, pass_count=3))
    np.testing.assert_array_equal(noisy_image, original)


def test_determinism(base_config, noisy_image):
    config = dataclasses.replace(base_config, pass_count=2)
    first = apply_fxaa(noisy_image, config)
    second = apply_fxaa(noisy_image, config)
    assert first.tobytes() == second.tobytes()


@pytest.mark.parametrize("policy", list(BlendPolicy))
@pytest.mark.parametrize("recompute", [False, True])
def test_border_invariance(base_config, noisy_image, policy, recompute):
    config = dataclasses.replace(base_config, pass_count=3, blend_policy=policy,
                                 recompute_luminance_per_pass=recompute)
    result = apply_fxaa(noisy_image, config)
    mask = border_mask(*noisy_image.shape[:2])
    np.testing.assert_array_equal(result[mask], noisy_image[mask])


@pytest.mark.parametrize("policy", list(BlendPolicy))
@pytest.mark.parametrize("passes", [1, 4])
def test_flat_image_is_a_fixpoint(base_config, policy, passes):
    image = np.empty((8, 9, 4), dtype=np.uint8)
    image[...] = (12, 200, 77, 255)
    config = dataclasses.replace(base_config, pass_count=passes, blend_policy=policy)
    np.testing.assert_array_equal(apply_fxaa(image, config), image)


def test_threshold_gating(base_config, vertical_edge_image):
    # Edge strength next to the edge is exactly 3/8
    at_threshold = dataclasses.replace(base_config, edge_threshold=0.375)
    np.testing.assert_array_equal(apply_fxaa(vertical_edge_image, at_threshold), vertical_edge_image)

    below_threshold = dataclasses.replace(base_config, edge_threshold=0.374)
    result = apply_fxaa(vertical_edge_image, below_threshold)
    assert np.all(result[1:4, 1] == 60)
    assert np.all(result[1:4, 2] == 194)


def test_negative_threshold_blends_every_interior_pixel(base_config, vertical_edge_image):
    source = vertical_edge_image
    target = np.zeros_like(source)
    lum = compute_luminance_map(source, base_config.luminance_weights)
    config = dataclasses.replace(base_config, edge_threshold=-1.0)

    blended = run_fxaa_pass(source, lum, target, config)
    assert blended == 9
    mask = border_mask(5, 5)
    np.testing.assert_array_equal(target[mask], source[mask])


def make_split_neighbourhood(center, near, far):
    """3x3 with 4 neighbours at `near` and 4 at `far`, in alternating positions."""
    image = np.empty((3, 3, 3), dtype=np.uint8)
    image[...] = far
    image[0, 1] = image[1, 0] = image[1, 2] = image[2, 1] = near
    image[1, 1] = center
    return image


@pytest.mark.parametrize("center, near, far, expected", [
    # Luminance 2, 2, 0: edge 1, far weight -1, weight sum 1.
    # Raw quotients (1275, 255, 1020)
    ((255, 255, 0), (255, 0, 255), (0, 0, 0), [255, 255, 255]),
    # Luminance 1, 1, 3: edge 1, far weight -1, weight sum 1.
    # Raw quotients (-765, -1020, 0)
    ((255, 0, 0), (0, 0, 255), (255, 255, 255), [0, 0, 0]),
])
def test_out_of_range_quotients_are_clamped(base_config, center, near, far, expected):
    image = make_split_neighbourhood(center, near, far)
    config = dataclasses.replace(base_config, luminance_weights=(1.0, 1.0, 1.0))

    result = apply_fxaa(image, config)
    np.testing.assert_array_equal(result[1, 1], expected)
    mask = border_mask(3, 3)
    np.testing.assert_array_equal(result[mask], image[mask])


def test_adversarial_weights_still_filter(base_config, noisy_image):
    config = dataclasses.replace(base_config, luminance_weights=(1.0, 1.0, 1.0), pass_count=3)
    result = apply_fxaa(noisy_image, config)
    assert result.dtype == np.uint8
    assert not np.array_equal(result, noisy_image)


def test_negative_weight_regression(base_config):
    image = np.full((3, 3, 3), 100, dtype=np.uint8)
    image[1, 1] = 255
    config = dataclasses.replace(base_config, luminance_weights=(1.0, 1.0, 1.0))

    np.testing.assert_array_equal(apply_fxaa(image, config)[1, 1], [91, 91, 91])

    strict = dataclasses.replace(config, clamp_negative_weights=True)
    np.testing.assert_array_equal(apply_fxaa(image, strict)[1, 1], [255, 255, 255])


def test_luminance_reuse_versus_recompute(base_config, vertical_edge_image):
    reuse = dataclasses.replace(base_config, pass_count=2, recompute_luminance_per_pass=False)
    recompute = dataclasses.replace(reuse, recompute_luminance_per_pass=True)

    reused = apply_fxaa(vertical_edge_image, reuse)
    recomputed = apply_fxaa(vertical_edge_image, recompute)

    # Second pass with the original luminance: (3*60*0.625 + 3*194 + 3*255) / 7.875
    assert reused[2, 2, 0] == 185
    assert recomputed[2, 2, 0] < reused[2, 2, 0]
    assert not np.array_equal(reused, recomputed)


def test_luminance_policy_irrelevant_for_single_pass(base_config, noisy_image):
    reuse = dataclasses.replace(base_config, recompute_luminance_per_pass=False)
    recompute = dataclasses.replace(base_config, recompute_luminance_per_pass=True)
    np.testing.assert_array_equal(apply_fxaa(noisy_image, reuse), apply_fxaa(noisy_image, recompute))


def test_passes_compound(base_config, vertical_edge_image):
    one = apply_fxaa(vertical_edge_image, base_config)
    two = apply_fxaa(vertical_edge_image, dataclasses.replace(base_config, pass_count=2))
    assert not np.array_equal(one, two)


@pytest.mark.parametrize("policy", list(BlendPolicy))
@pytest.mark.parametrize("channels", [3, 4])
def test_numba_and_numpy_kernels_agree(noisy_image, policy, channels):
    image = noisy_image
    if channels == 4:
        alpha = np.random.default_rng(9).integers(0, 256, size=image.shape[:2] + (1,), dtype=np.uint8)
        image = np.concatenate([image, alpha], axis=2)

    numba_config = FilterConfig(pass_count=1, blend_policy=policy, thread_count=1, use_numba_jit=True)
    numpy_config = dataclasses.replace(numba_config, use_numba_jit=False)

    numba_result = apply_fxaa(image, numba_config)
    numpy_result = apply_fxaa(image, numpy_config)
    np.testing.assert_allclose(numba_result.astype(int), numpy_result.astype(int), atol=1)


def test_thread_count_does_not_change_result(noisy_image):
    single = FilterConfig(pass_count=3, thread_count=1)
    threaded = dataclasses.replace(single, thread_count=4)
    assert apply_fxaa(noisy_image, single).tobytes() == apply_fxaa(noisy_image, threaded).tobytes()


def test_more_threads_than_rows():
    image = np.zeros((4, 6, 3), dtype=np.uint8)
    image[1:3, 3:] = 255
    config = FilterConfig(pass_count=1, thread_count=16)
    np.testing.assert_array_equal(
        apply_fxaa(image, config),
        apply_fxaa(image, dataclasses.replace(config, thread_count=1))
    )


def test_pass_refuses_to_write_its_own_source(base_config, vertical_edge_image):
    lum = compute_luminance_map(vertical_edge_image, base_config.luminance_weights)
    with pytest.raises(ValueError):
        run_fxaa_pass(vertical_edge_image, lum, vertical_edge_image, base_config)


def test_orchestrator_state_and_progress(base_config, vertical_edge_image):
    progress = []
    config = dataclasses.replace(base_config, pass_count=3)
    orchestrator = FxaaPassOrchestrator(config, progress_callback=lambda done, total: progress.append((done, total)))
    assert orchestrator.state is OrchestratorState.IDLE

    orchestrator.run(vertical_edge_image)

    assert orchestrator.state is OrchestratorState.DONE
    assert orchestrator.current_pass == 3
    assert progress == [(1, 3), (2, 3), (3, 3)]
    assert len(orchestrator.blended_counts) == 3
    assert orchestrator.blended_counts[0] == 6


def test_orchestrator_returns_to_idle_on_failure(base_config, vertical_edge_image):
    def fail(done, total):
        raise RuntimeError("stop")

    orchestrator = FxaaPassOrchestrator(base_config, progress_callback=fail)
    with pytest.raises(RuntimeError):
        orchestrator.run(vertical_edge_image)
    assert orchestrator.state is OrchestratorState.IDLE


def test_orchestrator_logs_passes(base_config, vertical_edge_image, tmp_path):
    logger = Logger(str(tmp_path))
    apply_fxaa(vertical_edge_image, dataclasses.replace(base_config, pass_count=2), logger=logger)

    with open(logger.log_filepath, encoding='utf-8') as f:
        contents = f.read()
    assert "FXAA run started" in contents
    assert "Pass 1/2" in contents
    assert "Pass 2/2" in contents


def test_numba_failure_falls_back_to_numpy(vertical_edge_image, tmp_path, monkeypatch):
    def broken_kernel(*args, **kwargs):
        raise NumbaError("simulated compile failure")

    monkeypatch.setattr(fxaa_engine, "_fxaa_pass_numba", broken_kernel)
    logger = Logger(str(tmp_path))
    config = FilterConfig(pass_count=1, thread_count=1)

    result = apply_fxaa(vertical_edge_image, config, logger=logger)
    expected = apply_fxaa(vertical_edge_image, dataclasses.replace(config, use_numba_jit=False))
    np.testing.assert_array_equal(result, expected)

    with open(logger.log_filepath, encoding='utf-8') as f:
        assert "Falling back to NumPy" in f.read()
