import pytest

from flowagg.cli import main, parse_args


def test_defaults():
    config = parse_args([])
    assert config.input_log_file == "/var/log/flow.log"
    assert config.output_log_file == "/var/log/aggregated_flow.log"
    assert config.aggregation_period == 5 * 60


def test_single_dash_options():
    config = parse_args(["-input", "a.log", "-output", "b.log", "-period", "2"])
    assert config.input_log_file == "a.log"
    assert config.output_log_file == "b.log"
    assert config.aggregation_period == 2 * 60


def test_double_dash_and_equals():
    config = parse_args(["--input=x.log", "--period", "1"])
    assert config.input_log_file == "x.log"
    assert config.aggregation_period == 60


@pytest.mark.parametrize("argv", [["-period", "0"], ["-period", "abc"], ["-bogus"]])
def test_bad_arguments(argv):
    with pytest.raises(SystemExit) as info:
        parse_args(argv)
    assert info.value.code == 2


def test_main_rejects_negative_period():
    with pytest.raises(SystemExit) as info:
        main(["-period", "-1"])
    assert info.value.code == 2