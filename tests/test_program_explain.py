from tensoreval import Program


def _sample_program() -> Program:
    return Program(
        """
func.func @tile(%t: tensor<4x4xi32>, %o: index) -> tensor<2x2xi32> {
  %s = "tensor.extract_slice"(%t, %o) {static_offsets = [?, 0], static_sizes = [2, 2], static_strides = [1, 2]} : (tensor<4x4xi32>, index) -> tensor<2x2xi32>
  "func.return"(%s) : (tensor<2x2xi32>) -> ()
}
""".strip()
    )


def test_program_explain_text_lists_ops_with_static_lists():
    explanation = _sample_program().explain()
    lines = explanation.splitlines()
    assert lines[0] == "[arg] %t : tensor<4x4xi32>"
    assert lines[1] == "[arg] %o : index"
    assert "[op] %s = tensor.extract_slice(%t, %o)" in explanation
    assert "offsets=[?, 0]" in explanation
    assert "strides=[1, 2]" in explanation
    assert lines[-1] == "[ret] tensor<2x2xi32>"


def test_program_explain_json_structure():
    payload = _sample_program().explain(json=True)
    assert payload["function"] == "tile"
    assert len(payload["digest"]) == 64
    ops = payload["operations"]
    assert [op["name"] for op in ops] == ["tensor.extract_slice", "func.return"]
    static = ops[0]["static"]
    assert static["static_sizes"] == [2, 2]
    assert static["static_offsets"][0] < 0
    assert ops[0]["line"] == 2


def test_digest_tracks_source_text():
    a = _sample_program()
    b = Program(a.src + "\n")
    assert a.digest != b.digest
