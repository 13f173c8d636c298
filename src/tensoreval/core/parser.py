from __future__ import annotations

import ast
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import LarkError, UnexpectedInput

from .exceptions import ParseError
from .ir import (
    DYNAMIC,
    BlockArgument,
    ElementType,
    Function,
    OpKind,
    Operation,
    Region,
    TensorType,
    Type,
)

GRAMMAR_PATH = Path(__file__).with_name("tensor_grammar.lark")

TENSOR_TYPE_RE = re.compile(r"^tensor<((?:(?:\d+|\?)x)*)([a-z][a-z0-9]*)>$")


@lru_cache(maxsize=1)
def _build_lark() -> Lark:
    grammar = GRAMMAR_PATH.read_text()
    return Lark(
        grammar,
        parser="earley",
        start="start",
        ambiguity="resolve",
        propagate_positions=True,
        maybe_placeholders=False,
    )


class _Args(list):
    """Block or function arguments."""


class _Results(list):
    pass


class _Operands(list):
    pass


class _Regions(list):
    pass


class _Types(list):
    pass


class _Attrs(dict):
    pass


class _FunctionType:
    def __init__(self, operand_types: Sequence[Type], result_types: Sequence[Type]):
        self.operand_types = list(operand_types)
        self.result_types = list(result_types)


class OperationTransformer(Transformer):
    def __init__(self, text: str):
        super().__init__()
        self.text = text
        self.lines = text.splitlines()

    # ------------------------------------------------------------------ helpers
    def _line_text(self, line: int) -> str:
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1]
        return ""

    def _error_token(self, token: Token, message: str) -> None:
        raise ParseError(
            message,
            line=token.line,
            column=token.column,
            line_text=self._line_text(token.line),
        )

    def _element_type(self, name: str, token: Token) -> ElementType:
        try:
            return ElementType(name)
        except ValueError:
            raise ParseError(
                f"Unsupported element type '{name}'",
                line=token.line,
                column=token.column,
                line_text=self._line_text(token.line),
            ) from None

    # ------------------------------------------------------------------ visitors
    def start(self, items):
        return items[0]

    @v_args(meta=True)
    def func_def(self, meta, items) -> Function:
        symbol: Token = items[0]
        arguments: List[BlockArgument] = []
        result_types: List[Type] = []
        operations: List[Operation] = []
        for item in items[1:]:
            if isinstance(item, _Args):
                arguments = list(item)
            elif isinstance(item, _Types):
                result_types = list(item)
            elif isinstance(item, Operation):
                operations.append(item)
        return Function(
            name=symbol.value[1:],
            arguments=arguments,
            result_types=result_types,
            body=Region(arguments=arguments, operations=operations),
        )

    def arg_list(self, items) -> _Args:
        return _Args(items)

    def block_arg(self, items) -> BlockArgument:
        name, ty = items
        return BlockArgument(name=name.value[1:], type=ty)

    @v_args(meta=True)
    def operation(self, meta, items) -> Operation:
        results: List[str] = []
        operands: List[str] = []
        regions: List[Region] = []
        attributes: Dict[str, Any] = {}
        fn_type: Optional[_FunctionType] = None
        name_token: Optional[Token] = None
        for item in items:
            if isinstance(item, _Results):
                results = list(item)
            elif isinstance(item, Token) and item.type == "ESCAPED_STRING":
                name_token = item
            elif isinstance(item, _Operands):
                operands = list(item)
            elif isinstance(item, _Regions):
                regions = list(item)
            elif isinstance(item, _Attrs):
                attributes = dict(item)
            elif isinstance(item, _FunctionType):
                fn_type = item
        if name_token is None or fn_type is None:
            raise ParseError(
                "Operation needs a quoted name and a function type",
                line=meta.line,
                column=meta.column,
                line_text=self._line_text(meta.line),
            )

        mnemonic = ast.literal_eval(name_token.value)
        try:
            kind = OpKind(mnemonic)
        except ValueError:
            raise ParseError(
                f"Unsupported operation '{mnemonic}'",
                line=name_token.line,
                column=name_token.column,
                line_text=self._line_text(name_token.line),
            ) from None
        source = self._line_text(meta.line)
        if len(fn_type.operand_types) != len(operands):
            raise ParseError(
                f"'{mnemonic}' has {len(operands)} operands but {len(fn_type.operand_types)} operand types",
                line=meta.line,
                column=meta.column,
                line_text=self._line_text(meta.line),
            )
        if len(fn_type.result_types) != len(results):
            raise ParseError(
                f"'{mnemonic}' binds {len(results)} results but declares {len(fn_type.result_types)} result types",
                line=meta.line,
                column=meta.column,
                line_text=self._line_text(meta.line),
            )
        return Operation(
            kind=kind,
            operands=operands,
            results=results,
            operand_types=fn_type.operand_types,
            result_types=fn_type.result_types,
            attributes=attributes,
            regions=regions,
            line=meta.line,
            column=meta.column,
            source=source,
        )

    def result_list(self, items) -> _Results:
        return _Results(token.value[1:] for token in items)

    def operand_list(self, items) -> _Operands:
        return _Operands(token.value[1:] for token in items)

    def region_list(self, items) -> _Regions:
        return _Regions(items)

    def region(self, items) -> Region:
        arguments: List[BlockArgument] = []
        operations: List[Operation] = []
        for item in items:
            if isinstance(item, _Args):
                arguments = list(item)
            elif isinstance(item, Operation):
                operations.append(item)
        return Region(arguments=arguments, operations=operations)

    def block_label(self, items) -> _Args:
        for item in items:
            if isinstance(item, _Args):
                return item
        return _Args()

    def attr_dict(self, items) -> _Attrs:
        return _Attrs(items)

    def attr_entry(self, items):
        key, value = items
        return key.value, value

    def int_attr(self, items) -> int:
        return int(items[0])

    def float_attr(self, items) -> float:
        return float(items[0])

    def dynamic_attr(self, _items) -> int:
        return DYNAMIC

    def true_attr(self, _items) -> bool:
        return True

    def false_attr(self, _items) -> bool:
        return False

    def array_attr(self, items) -> List[Any]:
        return list(items)

    def function_type(self, items) -> _FunctionType:
        operand_types: List[Type] = []
        if len(items) == 2:
            operand_types = list(items[0])
        return _FunctionType(operand_types, items[-1])

    def result_types(self, items) -> _Types:
        if len(items) == 1 and isinstance(items[0], tuple):
            return _Types(items[0])
        return _Types(items)

    def type_list(self, items) -> tuple:
        return tuple(items)

    def tensor_type(self, items) -> TensorType:
        token: Token = items[0]
        match = TENSOR_TYPE_RE.match(token.value)
        if not match:
            self._error_token(token, f"Invalid tensor type '{token.value}'")
        dims = [part for part in match.group(1).split("x") if part]
        shape = tuple(DYNAMIC if part == "?" else int(part) for part in dims)
        return TensorType(shape, self._element_type(match.group(2), token))

    def scalar_type(self, items) -> ElementType:
        token: Token = items[0]
        return self._element_type(token.value, token)


def _check_values(function: Function, lines: Sequence[str]) -> None:
    """Every operand is defined before use and every name is defined once."""

    def _error(op: Operation, message: str) -> None:
        line_text = lines[op.line - 1] if op.line and 1 <= op.line <= len(lines) else None
        raise ParseError(message, line=op.line, column=op.column, line_text=line_text)

    defined: Set[str] = set()

    def _define(name: str, op: Optional[Operation]) -> None:
        if name in defined:
            if op is None:
                raise ParseError(f"Redefinition of %{name}")
            _error(op, f"Redefinition of %{name}")
        defined.add(name)

    def _walk(region: Region, visible: Set[str]) -> None:
        scope = set(visible)
        for arg in region.arguments:
            _define(arg.name, None)
            scope.add(arg.name)
        for op in region.operations:
            for name in op.operands:
                if name not in scope:
                    _error(op, f"Use of undefined value %{name}")
            for nested in op.regions:
                _walk(nested, scope)
            for name in op.results:
                _define(name, op)
                scope.add(name)

    _walk(function.body, set())


def parse(program_str: str) -> Function:
    parser = _build_lark()
    lines = program_str.splitlines()
    try:
        tree = parser.parse(program_str)
    except UnexpectedInput as exc:
        line = exc.line or 1
        column = exc.column or 1
        line_text = ""
        if 1 <= line <= len(lines):
            line_text = lines[line - 1]
        raise ParseError(
            "Syntax error while parsing program",
            line=line,
            column=column,
            line_text=line_text,
        ) from exc
    except LarkError as exc:  # pragma: no cover
        raise ParseError(str(exc)) from exc

    transformer = OperationTransformer(program_str)
    try:
        function = transformer.transform(tree)
    except LarkError as exc:
        # Transformer callbacks raising ParseError arrive wrapped.
        cause = getattr(exc, "orig_exc", None)
        if isinstance(cause, ParseError):
            raise cause from None
        raise ParseError(str(exc)) from exc
    _check_values(function, lines)
    return function
