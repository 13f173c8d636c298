import textwrap

import pytest
from lark import Tree
from lark.exceptions import VisitError
from lark.tree import Meta

from tensoreval import DYNAMIC, ElementType, OpKind, ParseError, TensorType
from tensoreval.core.parser import OperationTransformer, parse

PAD_PROGRAM = """
func.func @pad(%t: tensor<2xi32>, %n: index) -> tensor<?xi32> {
  // one zero before, %n zeros after
  %p = "tensor.pad"(%t, %n) ({
  ^bb0(%i: index):
    %zero = "arith.constant"() {value = 0} : () -> i32
    "tensor.yield"(%zero) : (i32) -> ()
  }) {static_low = [1], static_high = [?]} : (tensor<2xi32>, index) -> tensor<?xi32>
  "func.return"(%p) : (tensor<?xi32>) -> ()
}
"""


def _src(text: str) -> str:
    return textwrap.dedent(text).strip()


def test_parse_function_signature():
    fn = parse(_src(PAD_PROGRAM))
    assert fn.name == "pad"
    assert [arg.name for arg in fn.arguments] == ["t", "n"]
    assert fn.arguments[0].type == TensorType((2,), ElementType("i32"))
    assert fn.arguments[1].type == ElementType("index")
    assert fn.result_types == [TensorType((DYNAMIC,), ElementType("i32"))]


def test_parse_operation_with_region_and_attributes():
    fn = parse(_src(PAD_PROGRAM))
    pad_op, ret = fn.body.operations
    assert pad_op.kind == OpKind.PAD
    assert pad_op.results == ["p"]
    assert pad_op.operands == ["t", "n"]
    assert pad_op.attributes == {"static_low": [1], "static_high": [DYNAMIC]}
    assert pad_op.line == 3
    (region,) = pad_op.regions
    assert [arg.name for arg in region.arguments] == ["i"]
    assert [op.kind for op in region.operations] == [OpKind.CONSTANT, OpKind.YIELD]
    assert region.terminator.operands == ["zero"]
    assert ret.kind == OpKind.RETURN
    assert ret.result_types == []


def test_operations_walk_includes_nested_regions():
    fn = parse(_src(PAD_PROGRAM))
    names = [op.name for op in fn.operations()]
    assert names == ["tensor.pad", "arith.constant", "tensor.yield", "func.return"]


def test_parse_attribute_literals():
    fn = parse(
        _src(
            """
            func.func @consts() -> (f32, tensor<2x2xi64>) {
              %f = "arith.constant"() {value = -2.5} : () -> f32
              %t = "arith.constant"() {value = [1, 2, 3, 4]} : () -> tensor<2x2xi64>
              "func.return"(%f, %t) : (f32, tensor<2x2xi64>) -> ()
            }
            """
        )
    )
    f_op, t_op, _ = fn.body.operations
    assert f_op.attributes["value"] == pytest.approx(-2.5)
    assert t_op.attributes["value"] == [1, 2, 3, 4]
    assert len(fn.result_types) == 2


def test_parse_rejects_unknown_operation():
    src = _src(
        """
        func.func @f(%t: tensor<2xi32>) -> tensor<2xi32> {
          %r = "tensor.reshape"(%t) : (tensor<2xi32>) -> tensor<2xi32>
          "func.return"(%r) : (tensor<2xi32>) -> ()
        }
        """
    )
    with pytest.raises(ParseError) as err:
        parse(src)
    assert "Unsupported operation 'tensor.reshape'" in str(err.value)
    assert err.value.line == 2


def test_parse_rejects_unknown_element_type():
    src = _src(
        """
        func.func @f(%t: tensor<2xbf16>) -> tensor<2xbf16> {
          "func.return"(%t) : (tensor<2xbf16>) -> ()
        }
        """
    )
    with pytest.raises(ParseError, match="Unsupported element type 'bf16'"):
        parse(src)


def test_parse_reports_syntax_error_location():
    src = _src(
        """
        func.func @f(%t: tensor<2xi32>) -> tensor<2xi32> {
          "func.return"(%t) (tensor<2xi32>) -> ()
        }
        """
    )
    with pytest.raises(ParseError) as err:
        parse(src)
    message = str(err.value)
    assert "Syntax error" in message
    assert "line 2" in message
    assert "^" in message


def test_parse_rejects_undefined_value():
    src = _src(
        """
        func.func @f(%t: tensor<2xi32>) -> tensor<2xi32> {
          "func.return"(%u) : (tensor<2xi32>) -> ()
        }
        """
    )
    with pytest.raises(ParseError, match="Use of undefined value %u"):
        parse(src)


def test_parse_rejects_redefinition():
    src = _src(
        """
        func.func @f(%t: tensor<2xi32>) -> tensor<2xi32> {
          %t = "tensor.cast"(%t) : (tensor<2xi32>) -> tensor<2xi32>
          "func.return"(%t) : (tensor<2xi32>) -> ()
        }
        """
    )
    with pytest.raises(ParseError, match="Redefinition of %t"):
        parse(src)


def test_parse_rejects_operand_type_count_mismatch():
    src = _src(
        """
        func.func @f(%t: tensor<2xi32>) -> tensor<2xi32> {
          %r = "tensor.cast"(%t) : () -> tensor<2xi32>
          "func.return"(%r) : (tensor<2xi32>) -> ()
        }
        """
    )
    with pytest.raises(ParseError, match="1 operands but 0 operand types"):
        parse(src)


def test_region_values_do_not_leak_into_parent_scope():
    src = _src(
        """
        func.func @f() -> tensor<2xindex> {
          %g = "tensor.generate"() ({
          ^bb0(%i: index):
            "tensor.yield"(%i) : (index) -> ()
          }) : () -> tensor<2xindex>
          %x = "arith.addi"(%i, %i) : (index, index) -> index
          "func.return"(%g) : (tensor<2xindex>) -> ()
        }
        """
    )
    with pytest.raises(ParseError, match="Use of undefined value %i"):
        parse(src)


def test_operation_without_name_or_type_reports_its_line():
    meta = Meta()
    meta.line, meta.column = 2, 3
    transformer = OperationTransformer("func.func @f() {\n  %x = broken\n}")
    with pytest.raises(VisitError) as err:
        transformer.transform(Tree("operation", [], meta))
    cause = err.value.orig_exc
    assert isinstance(cause, ParseError)
    assert cause.line == 2
    assert "needs a quoted name and a function type" in str(cause)
