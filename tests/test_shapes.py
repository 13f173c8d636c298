import numpy as np
import pytest

from tensoreval import DYNAMIC, ContractError, ElementType, TensorValue
from tensoreval.core.shapes import (
    collapsed_sizes,
    count_dynamic,
    expanded_sizes,
    extract_offsets_sizes_strides,
    inserted_unit_dims,
    rank_reduced_dims,
    replace_dynamic_vals,
    reshape_tensor,
)


def test_replace_dynamic_vals_substitutes_in_order():
    assert replace_dynamic_vals([1, DYNAMIC, 3, DYNAMIC], [7, 8]) == [1, 7, 3, 8]
    assert replace_dynamic_vals([2, 3], []) == [2, 3]
    assert count_dynamic([DYNAMIC, 1, DYNAMIC]) == 2


def test_replace_dynamic_vals_rejects_count_mismatch():
    with pytest.raises(ContractError, match="dynamic values"):
        replace_dynamic_vals([DYNAMIC, DYNAMIC], [1])
    with pytest.raises(ContractError):
        replace_dynamic_vals([1], [4])


def test_extract_offsets_sizes_strides_resolves_each_list():
    v = extract_offsets_sizes_strides(
        [5], [], [2],
        [DYNAMIC, 0], [3, 4], [1, DYNAMIC],
    )
    assert v.offsets == [5, 0]
    assert v.sizes == [3, 4]
    assert v.strides == [1, 2]
    assert v.rank == 2


def test_extract_offsets_sizes_strides_rejects_rank_mismatch():
    with pytest.raises(ContractError, match="equal rank"):
        extract_offsets_sizes_strides([], [], [], [0, 0], [1], [1, 1])


def test_collapsed_sizes_multiplies_groups():
    assert collapsed_sizes([2, 3, 4], [[0, 1], [2]]) == [6, 4]
    assert collapsed_sizes([2, 3], [[0, 1]]) == [6]


def test_collapsed_sizes_rejects_bad_reassociation():
    with pytest.raises(ContractError):
        collapsed_sizes([2, 3], [[1], [0]])


def test_expanded_sizes_resolves_single_dynamic_extent():
    assert expanded_sizes([6], [2, DYNAMIC], [[0, 1]]) == [2, 3]
    assert expanded_sizes([12, 5], [DYNAMIC, 4, 5], [[0, 1], [2]]) == [3, 4, 5]


def test_expanded_sizes_rejects_two_dynamic_extents_in_a_group():
    with pytest.raises(ContractError, match="more than one dynamic"):
        expanded_sizes([6], [DYNAMIC, DYNAMIC], [[0, 1]])


def test_expanded_sizes_rejects_indivisible_extent():
    with pytest.raises(ContractError, match="not divisible"):
        expanded_sizes([7], [2, DYNAMIC], [[0, 1]])
    with pytest.raises(ContractError):
        expanded_sizes([6], [4, 2], [[0, 1]])


def test_reshape_tensor_keeps_row_major_sequence():
    t = TensorValue.from_array(np.arange(6, dtype=np.int32).reshape(2, 3))
    r = reshape_tensor(t, [3, 2])
    np.testing.assert_array_equal(r.to_numpy(), np.arange(6).reshape(3, 2))
    assert r.is_exclusive
    with pytest.raises(ContractError):
        reshape_tensor(t, [4])


@pytest.mark.parametrize(
    "static_sizes, result_shape, expected",
    [
        ([1, 3], [3], [0]),
        ([3, 1], [3], [1]),
        ([1, 1, 4], [1, 4], [1]),
        ([1, 4], [1, 4], []),
        ([2, 2], [2, 2], []),
        ([1, DYNAMIC], [DYNAMIC], [0]),
    ],
)
def test_rank_reduced_dims(static_sizes, result_shape, expected):
    assert rank_reduced_dims(static_sizes, result_shape) == expected


def test_inserted_unit_dims_finds_missing_unit_dimensions():
    assert inserted_unit_dims([1, 3], [3]) == [0]
    assert inserted_unit_dims([3, 1], [3]) == [1]
    assert inserted_unit_dims([2, 2], [2, 2]) == []


def test_inserted_unit_dims_rejects_non_unit_gaps():
    with pytest.raises(ContractError):
        inserted_unit_dims([2, 3], [3])


def test_element_type_of_reshape_is_preserved():
    t = TensorValue.from_array(np.ones(4, dtype=np.float32))
    assert reshape_tensor(t, [2, 2]).element_type == ElementType("f32")
