import numpy as np

from services.normalizer import enforce_supply_and_round


def test_already_integral_allocation_is_kept():
    A = np.array([[7.0, 2.0], [3.0, 1.0]])
    out = enforce_supply_and_round(A, np.array([10.0, 5.0]))
    assert out.tolist() == [[7, 2], [3, 1]]
    assert out.dtype == np.int64


def test_leftover_units_go_to_largest_remainders():
    A = np.array([[2.6], [3.7], [1.2]])
    out = enforce_supply_and_round(A, np.array([10.0]))
    # floors 2, 3, 1 leave a budget of 4, but only three zones have a remainder
    assert out[:, 0].tolist() == [3, 4, 2]


def test_budget_is_floor_of_supply():
    A = np.array([[5.5], [5.5]])
    out = enforce_supply_and_round(A, np.array([10.7]))
    assert out.sum() <= 10
    assert out[:, 0].tolist() == [5, 5]


def test_over_supplied_column_is_scaled_down():
    A = np.array([[30.0, 1.0], [30.0, 1.0], [40.0, 1.0]])
    supply = np.array([10.0, 3.0])
    out = enforce_supply_and_round(A, supply)
    assert out[:, 0].sum() == 10
    assert out[:, 1].tolist() == [1, 1, 1]
    assert (out >= 0).all()


def test_negative_values_are_clipped():
    A = np.array([[-4.0], [2.2]])
    out = enforce_supply_and_round(A, np.array([5.0]))
    assert out[:, 0].tolist() == [0, 3]


def test_rounding_is_idempotent():
    rng = np.random.default_rng(7)
    A = rng.random((6, 2)) * 20
    supply = np.array([25.0, 12.0])
    once = enforce_supply_and_round(A, supply)
    twice = enforce_supply_and_round(once.astype(float), supply)
    np.testing.assert_array_equal(once, twice)
    assert (once.sum(axis=0) <= np.floor(supply)).all()


def test_empty_matrix():
    out = enforce_supply_and_round(np.zeros((0, 2)), np.array([1.0, 1.0]))
    assert out.shape == (0, 2)


def test_cap_just_below_an_integer_counts_as_that_integer():
    A = np.array([[6.4], [3.6]])
    out = enforce_supply_and_round(A, np.array([9.9999999995]))
    assert out[:, 0].tolist() == [6, 4]

    out = enforce_supply_and_round(A, np.array([9.99]))
    assert out[:, 0].sum() == 9
