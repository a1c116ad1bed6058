import io
import threading
import urllib.error
import urllib.request

import pytest

from flowagg.collector import (
    APP_VERSION,
    CollectorOptions,
    HealthState,
    load_mapping,
    main,
    make_health_server,
    parse_args,
)


def test_health_state_transitions():
    state = HealthState()
    assert state.status() == (503, "Not OK\n")
    state.set_collecting(True)
    assert state.status() == (200, "OK\n")
    state.set_collecting(False)
    assert state.status()[0] == 503


@pytest.fixture
def health_server():
    state = HealthState()
    server = make_health_server("127.0.0.1:0", state)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield state, f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()
    thread.join(timeout=5)


def test_health_endpoint_over_http(health_server):
    state, base = health_server
    with pytest.raises(urllib.error.HTTPError) as info:
        urllib.request.urlopen(base + "/__health", timeout=5)
    assert info.value.code == 503
    assert info.value.read() == b"Not OK\n"

    state.set_collecting(True)
    with urllib.request.urlopen(base + "/__health", timeout=5) as response:
        assert response.status == 200
        assert response.read() == b"OK\n"


def test_unknown_path_is_not_found(health_server):
    _, base = health_server
    with pytest.raises(urllib.error.HTTPError) as info:
        urllib.request.urlopen(base + "/nothing", timeout=5)
    assert info.value.code == 404


def test_health_server_rejects_bad_address():
    with pytest.raises(ValueError):
        make_health_server("no-port", HealthState())


def test_load_mapping_reads_yaml():
    config = load_mapping(io.StringIO("formatter:\n  fields: [a, b]\n"))
    assert config == {"formatter": {"fields": ["a", "b"]}}


@pytest.mark.parametrize("text", ["", "- a\n- b\n", "key: [unclosed\n"])
def test_load_mapping_rejects(text):
    with pytest.raises(ValueError):
        load_mapping(io.StringIO(text))


def test_parse_args_defaults():
    options = parse_args([])
    assert options == CollectorOptions()
    assert options.listen == "sflow://:6343,netflow://:2055"
    assert options.err_int == 10.0
    assert options.addr == ":8080"


@pytest.mark.parametrize(
    "value, seconds",
    [("1m30s", 90.0), ("500ms", 0.5), ("0", 0.0), ("2h", 7200.0)],
)
def test_parse_args_durations(value, seconds):
    assert parse_args(["-err.int", value]).err_int == pytest.approx(seconds)


@pytest.mark.parametrize("value", ["10", "s", "1x", ""])
def test_parse_args_bad_duration(value):
    with pytest.raises(SystemExit):
        parse_args(["-err.int", value])


def test_parse_args_dotted_flags():
    options = parse_args(["-err.cnt", "3", "-templates.path", "/tmp/t", "-produce", "raw"])
    assert (options.err_cnt, options.templates_path, options.produce) == (3, "/tmp/t", "raw")


def test_main_prints_version(capsys):
    assert main(["-v"]) == 0
    assert capsys.readouterr().out.strip() == APP_VERSION.strip()


def test_main_bad_log_level():
    assert main(["-loglevel", "loud", "-addr", ""]) == 1


def test_main_unknown_producer():
    assert main(["-produce", "other", "-addr", ""]) == 1


def test_main_bad_listen_address():
    assert main(["-listen", "tcp://:1", "-addr", ""]) == 1


def test_main_missing_mapping(tmp_path):
    assert main(["-mapping", str(tmp_path / "absent.yaml"), "-addr", ""]) == 1


def test_main_empty_mapping(tmp_path):
    path = tmp_path / "mapping.yaml"
    path.write_text("", encoding="utf-8")
    assert main(["-mapping", str(path), "-addr", ""]) == 1