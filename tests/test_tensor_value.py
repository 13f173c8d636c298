import numpy as np
import pytest

from tensoreval import ContractError, ElementType, OwnershipError, TensorValue, View, make_tensor
from tensoreval.core.tensor import IndexSpace, default_strides

I32 = ElementType("i32")


def test_default_strides_are_row_major():
    assert default_strides([2, 3, 4]) == [12, 4, 1]
    assert default_strides([]) == []


def test_index_space_restarts_and_orders_last_dim_fastest():
    space = IndexSpace([2, 2])
    first = list(space)
    assert first == [(0, 0), (0, 1), (1, 0), (1, 1)]
    assert list(space) == first
    assert len(space) == 4


def test_view_rejects_mismatched_lengths_and_negative_sizes():
    with pytest.raises(ContractError):
        View([2, 2], [1])
    with pytest.raises(ContractError):
        View([-1], [1])


def test_view_in_bounds_checks_rank_and_extents():
    view = View.row_major([2, 3])
    assert view.in_bounds([1, 2])
    assert not view.in_bounds([2, 0])
    assert not view.in_bounds([0, -1])
    assert not view.in_bounds([0])


def test_make_tensor_is_zero_filled():
    t = make_tensor(I32, [2, 3])
    assert t.shape == (2, 3)
    assert t.strides == [3, 1]
    np.testing.assert_array_equal(t.to_numpy(), np.zeros((2, 3), dtype=np.int32))


def test_rank_zero_tensor_has_one_element():
    t = make_tensor(ElementType("f32"), [])
    assert t.rank == 0
    assert t.view.num_elements == 1
    t.insert_element([], 2.5)
    assert t.extract_element([]) == pytest.approx(2.5)


def test_insert_then_extract_round_trips():
    t = make_tensor(I32, [4])
    t.insert_element([2], 7)
    assert t.extract_element([2]) == 7
    assert t.extract_element([1]) == 0


def test_out_of_bounds_access_is_a_contract_error():
    t = make_tensor(I32, [2])
    with pytest.raises(ContractError):
        t.extract_element([2])
    with pytest.raises(ContractError):
        t.insert_element([5], 1)


def test_from_array_infers_element_type_and_copies():
    source = np.arange(6, dtype=np.int64).reshape(2, 3)
    t = TensorValue.from_array(source)
    assert t.element_type == ElementType("i64")
    source[0, 0] = 99
    assert t.extract_element([0, 0]) == 0
    np.testing.assert_array_equal(np.asarray(t), np.arange(6).reshape(2, 3))


def test_clone_does_not_alias_storage():
    t = TensorValue.from_array(np.array([1, 2, 3], dtype=np.int32))
    c = t.clone()
    c.insert_element([0], 10)
    assert t.extract_element([0]) == 1
    assert c.extract_element([0]) == 10


def test_shared_storage_rejects_writes_until_cloned():
    t = TensorValue.from_array(np.array([1, 2], dtype=np.int32))
    alias = t.share()
    assert not t.is_exclusive
    assert not alias.is_exclusive
    with pytest.raises(OwnershipError):
        alias.insert_element([0], 5)
    with pytest.raises(OwnershipError):
        t.fill(lambda idx: 0)
    writable = alias.ensure_exclusive()
    assert writable.is_exclusive
    writable.insert_element([0], 5)
    assert t.extract_element([0]) == 1


def test_ensure_exclusive_returns_self_when_owned():
    t = make_tensor(I32, [1])
    assert t.ensure_exclusive() is t


def test_drop_dims_removes_unit_dimensions_only():
    t = TensorValue.from_array(np.arange(3, dtype=np.int32).reshape(1, 3))
    t.drop_dims([0])
    assert t.shape == (3,)
    assert t.strides == [1]
    assert t.extract_element([2]) == 2
    with pytest.raises(ContractError):
        t.drop_dims([0])


def test_fill_visits_every_index_in_row_major_order():
    t = make_tensor(I32, [2, 2])
    seen = []

    def _gen(idx):
        seen.append(idx)
        return idx[0] * 10 + idx[1]

    t.fill(_gen)
    assert seen == [(0, 0), (0, 1), (1, 0), (1, 1)]
    np.testing.assert_array_equal(t.to_numpy(), [[0, 1], [10, 11]])


def test_strided_view_reads_through_offsets():
    base = TensorValue.from_array(np.arange(6, dtype=np.int32))
    strided = TensorValue(base.element_type, View([3], [2]), base._storage)
    np.testing.assert_array_equal(strided.to_numpy(), [0, 2, 4])


def test_integer_element_types_report_bit_width():
    i8 = ElementType("i8")
    t = make_tensor(i8, [1])
    t.insert_element([0], 127)
    assert t.extract_element([0]) == 127
    assert i8.bitwidth == 8
    assert ElementType("index").bitwidth == 64


def test_unknown_element_type_is_rejected():
    with pytest.raises(ValueError, match="Unsupported element type"):
        ElementType("bf16")
