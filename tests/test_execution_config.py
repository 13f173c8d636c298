import pytest

from tensoreval import ExecutionConfig, Program


def _sample_program() -> Program:
    return Program(
        """
func.func @id(%t: tensor<2xi32>) -> tensor<2xi32> {
  "func.return"(%t) : (tensor<2xi32>) -> ()
}
""".strip()
    )


def test_execution_config_normalization_handles_policy_case_and_flags():
    cfg = ExecutionConfig(on_failure="RETURN", record_values=1, max_region_depth="8").normalized()
    assert cfg.on_failure == "return"
    assert cfg.record_values is True
    assert cfg.max_region_depth == 8


def test_execution_config_defaults():
    cfg = ExecutionConfig().normalized()
    assert cfg.on_failure == "raise"
    assert cfg.explain_timings is True
    assert cfg.record_values is False


def test_compile_rejects_unknown_failure_policy():
    prog = _sample_program()
    with pytest.raises(ValueError, match="Unsupported failure policy"):
        prog.compile(config=ExecutionConfig(on_failure="ignore"))


def test_compile_rejects_non_positive_region_depth():
    prog = _sample_program()
    with pytest.raises(ValueError, match="max_region_depth must be positive"):
        prog.compile(config=ExecutionConfig(max_region_depth=0))
