import numpy as np
import pytest
from scipy import sparse

from cfrank.vectors import SparseVector


def test_zero_entries_are_not_stored():
    vec = SparseVector({0: 1.5, 3: 0.0})
    assert len(vec) == 1
    assert 3 not in vec

    vec[0] = 0.0
    assert len(vec) == 0
    assert vec.get(0) == 0.0


def test_plus_drops_cancelled_entries():
    a = SparseVector({1: 0.5, 2: 1.0})
    b = SparseVector({1: -0.5, 7: 2.0})

    total = a.plus(b)

    assert total == SparseVector({2: 1.0, 7: 2.0})
    # operands untouched
    assert a == SparseVector({1: 0.5, 2: 1.0})


def test_times_and_absolute():
    vec = SparseVector({0: -2.0, 5: 0.5})

    assert vec.times(3.0) == SparseVector({0: -6.0, 5: 1.5})
    assert vec.absolute() == SparseVector({0: 2.0, 5: 0.5})


def test_merge_is_last_write_wins():
    merged = SparseVector.merge([
        SparseVector({1: 1.0, 2: 2.0}),
        SparseVector({2: 5.0, 9: 3.0}),
    ])

    assert merged == SparseVector({1: 1.0, 2: 5.0, 9: 3.0})


def test_negative_index_rejected():
    with pytest.raises(ValueError):
        SparseVector({-1: 1.0})


def test_scipy_round_trip():
    matrix = sparse.csr_matrix(np.array([[0.0, 2.0, 0.0], [1.0, 0.0, -3.0]]))

    row = SparseVector.from_scipy(matrix, 1)

    assert row == SparseVector({0: 1.0, 2: -3.0})
    assert (row.to_csr(3).toarray() == matrix[1].toarray()).all()


def test_from_dense_array_and_default_size():
    vec = SparseVector.from_scipy(np.array([0.0, 0.0, 4.0]))

    assert vec == SparseVector({2: 4.0})
    assert vec.to_csr().shape == (1, 3)
    with pytest.raises(ValueError):
        vec.to_csr(2)


def test_large_indices_are_supported():
    vec = SparseVector({2**31 - 1: 1.0})

    assert vec.max_index() == 2**31 - 1
    assert list(vec) == [(2**31 - 1, 1.0)]
