import numpy as np
import pytest

from analysis.gradcam import grad_cam, normalize_heatmap, pool_channel_weights, synthesize_heatmap
from utils.exceptions import ContractViolation, DegenerateInput, InvalidArgument


@pytest.fixture
def fmap_2x2():
    # channel 0 = [[1,2],[3,4]], channel 1 = [[4,3],[2,1]]
    ch0 = np.array([[1.0, 2.0], [3.0, 4.0]])
    ch1 = np.array([[4.0, 3.0], [2.0, 1.0]])
    return np.stack([ch0, ch1], axis=-1)


def test_worked_example(fmap_2x2):
    raw = synthesize_heatmap(fmap_2x2, [1.0, -1.0])
    np.testing.assert_array_equal(raw, [[-3.0, -1.0], [1.0, 3.0]])
    heatmap, degenerate = normalize_heatmap(raw)
    assert not degenerate
    np.testing.assert_allclose(heatmap, [[0.0, 0.0], [1.0 / 3.0, 1.0]])


def test_zero_weights_are_degenerate(fmap_2x2):
    raw = synthesize_heatmap(fmap_2x2, [0.0, 0.0])
    assert not raw.any()
    heatmap, degenerate = normalize_heatmap(raw)
    assert degenerate
    assert not heatmap.any()


def test_constant_channel_gradient_pools_exactly():
    grads = np.zeros((3, 5, 3))
    grads[..., 0] = 0.1
    grads[..., 1] = -7.3
    grads[..., 2] = 1e-8
    weights = pool_channel_weights(grads)
    assert weights.shape == (3,)
    assert weights[0] == 0.1
    assert weights[1] == -7.3
    assert weights[2] == 1e-8


def test_pooling_does_not_mix_channels():
    rng = np.random.default_rng(3)
    grads = rng.normal(size=(4, 6, 5))
    weights = pool_channel_weights(grads)
    for c in range(5):
        assert weights[c] == pytest.approx(grads[..., c].mean())


def test_pooling_zero_extent():
    with pytest.raises(DegenerateInput):
        pool_channel_weights(np.zeros((0, 4, 2)))
    with pytest.raises(DegenerateInput):
        synthesize_heatmap(np.zeros((3, 0, 2)), [1.0, 1.0])


def test_pooling_rejects_wrong_rank():
    with pytest.raises(InvalidArgument):
        pool_channel_weights(np.zeros((4, 4)))


def test_weight_count_must_match_channels(fmap_2x2):
    with pytest.raises(ContractViolation):
        synthesize_heatmap(fmap_2x2, [1.0, 2.0, 3.0])


def test_linearity_in_weights():
    rng = np.random.default_rng(7)
    fmap = rng.normal(size=(6, 6, 4))
    weights = rng.normal(size=4)
    raw = synthesize_heatmap(fmap, weights)
    np.testing.assert_allclose(synthesize_heatmap(fmap, 2.5 * weights), 2.5 * raw, rtol=1e-12, atol=1e-12)


def test_normalized_range():
    rng = np.random.default_rng(11)
    raw = rng.normal(size=(7, 7))
    raw[0, 0] = 5.0
    heatmap, degenerate = normalize_heatmap(raw)
    assert not degenerate
    assert heatmap.max() == 1.0
    assert heatmap.min() >= 0.0


def test_flat_positive_map_is_all_ones():
    heatmap, degenerate = normalize_heatmap(np.full((3, 3), 0.25))
    assert not degenerate
    np.testing.assert_array_equal(heatmap, np.ones((3, 3)))


def test_non_finite_raw_map():
    with pytest.raises(ContractViolation):
        normalize_heatmap(np.array([[1.0, np.nan]]))


def test_shape_mismatch_between_pair():
    with pytest.raises(ContractViolation):
        grad_cam(np.zeros((2, 2, 3)), np.zeros((2, 3, 3)))


def test_zero_gradient_pair():
    rng = np.random.default_rng(5)
    fmap = rng.random((4, 4, 3))
    weights, raw, heatmap, degenerate = grad_cam(fmap, np.zeros_like(fmap))
    assert not weights.any()
    assert not raw.any()
    assert not heatmap.any()
    assert degenerate
