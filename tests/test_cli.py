import httpx
import pytest

import cli
import daemon


@pytest.fixture(autouse=True)
def tmp_files(tmp_path, monkeypatch):
    monkeypatch.setattr(daemon, "TMP_DIR", tmp_path)
    monkeypatch.setattr(daemon, "PID_FILE", tmp_path / "pid")
    monkeypatch.setattr(daemon, "PORT_FILE", tmp_path / "port")
    return tmp_path


@pytest.fixture
def api(monkeypatch):
    calls = []
    responses = {}

    def fake_request(method, url, content=None, timeout=None):
        calls.append((method, url, content))
        status, text = responses.get(url.rsplit("/", 1)[-1], (200, ""))
        return httpx.Response(status, text=text)

    monkeypatch.setattr(cli.httpx, "request", fake_request)
    return calls, responses


def test_pid_and_port_files(tmp_files):
    assert daemon.read_pid() is None
    assert not daemon.is_running()

    daemon.write_pid()
    daemon.write_port(4321)

    assert daemon.is_running()
    assert daemon.read_port() == 4321

    daemon.cleanup()
    assert daemon.read_pid() is None
    assert daemon.read_port() is None


def test_daemon_die_cleans_up(tmp_files):
    daemon.write_pid()
    daemon.write_port(4321)

    with pytest.raises(SystemExit) as exc:
        daemon.daemon_die(OSError("address in use"))

    assert exc.value.code == 1
    assert not (tmp_files / "pid").exists()
    assert not (tmp_files / "port").exists()


def test_name_requires_daemon(capsys):
    with pytest.raises(SystemExit):
        cli.main(["name"])
    assert "daemon not running" in capsys.readouterr().out


def test_get_name(api, capsys):
    calls, responses = api
    daemon.write_port(4321)
    responses["getName"] = (200, "alice@laptop")

    cli.main(["name"])

    assert calls == [("GET", "http://localhost:4321/.api/getName", None)]
    assert capsys.readouterr().out == "alice@laptop\n"


def test_set_name(api):
    calls, _ = api
    daemon.write_port(4321)

    cli.main(["name", "Bob Smith"])

    assert calls == [("POST", "http://localhost:4321/.api/setName", b"Bob Smith")]


def test_failed_request_prints_body(api, capsys):
    _, responses = api
    daemon.write_port(4321)
    responses["setName"] = (400, "400 Bad Request\nName was longer than 64 bytes, rejected\n")

    with pytest.raises(SystemExit) as exc:
        cli.main(["name", "x" * 65])

    assert exc.value.code == 1
    out = capsys.readouterr().out
    assert "API request failed!" in out
    assert "longer than 64 bytes" in out


def test_root_sends_absolute_path(api, tmp_path, monkeypatch):
    calls, _ = api
    daemon.write_port(4321)
    (tmp_path / "share").mkdir()
    monkeypatch.chdir(tmp_path)

    cli.main(["root", "share"])

    assert calls == [("POST", "http://localhost:4321/.api/setRoot", str((tmp_path / "share").resolve()).encode())]


def test_root_rejects_files(api, tmp_path, capsys):
    calls, _ = api
    daemon.write_port(4321)
    target = tmp_path / "file.txt"
    target.write_text("x")

    with pytest.raises(SystemExit):
        cli.main(["root", str(target)])

    assert "not a directory" in capsys.readouterr().out
    assert calls == []


def test_stop_without_daemon(capsys):
    cli.main(["stop"])
    assert "daemon not running" in capsys.readouterr().out


def test_version(capsys):
    cli.main(["version"])
    assert capsys.readouterr().out.startswith("lannet ")
