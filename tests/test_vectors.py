import numpy as np
import pytest

from pairwise_taste.vectors import align, as_vector, cosine, difference, dot, pad_to, sigmoid, stack


def test_as_vector_handles_none_and_garbage():
    assert as_vector(None).shape == (0,)
    assert np.array_equal(as_vector(None, dim=3), np.zeros(3))
    assert np.array_equal(as_vector(["a", "b"], dim=2), np.zeros(2))


def test_as_vector_replaces_non_finite_values():
    vec = as_vector([1.0, float("nan"), float("inf")])
    assert vec.tolist() == [1.0, 0.0, 0.0]


def test_pad_and_align_never_truncate():
    assert pad_to(np.array([1.0, 2.0]), 1).tolist() == [1.0, 2.0]
    a, b = align(np.array([1.0]), np.array([1.0, 2.0, 3.0]))
    assert a.tolist() == [1.0, 0.0, 0.0]
    assert len(b) == 3


def test_difference_treats_missing_elements_as_zero():
    assert difference([1.0, 2.0, 3.0], [1.0]).tolist() == [0.0, 2.0, 3.0]
    assert difference(None, [1.0, 1.0]).tolist() == [-1.0, -1.0]


def test_dot_and_cosine():
    assert dot([1, 2], [3, 4, 5]) == pytest.approx(11.0)
    assert cosine([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine([1, 0], [0, 1]) == pytest.approx(0.0)


def test_cosine_with_zero_vector_is_zero():
    assert cosine([0, 0], [1, 1]) == 0.0
    assert cosine(None, None) == 0.0


def test_sigmoid_is_stable_for_large_inputs():
    assert sigmoid(0.0) == 0.5
    assert sigmoid(1000.0) == pytest.approx(1.0)
    assert sigmoid(-1000.0) == pytest.approx(0.0)


def test_stack_zero_pads_ragged_rows():
    matrix = stack([np.array([1.0]), np.array([1.0, 2.0])])
    assert matrix.tolist() == [[1.0, 0.0], [1.0, 2.0]]
    assert stack([]).shape == (0, 0)
