import json
from types import SimpleNamespace

import pytest

import servicebus_utility.__main__ as cli


@pytest.fixture
def run(monkeypatch, capsys, fake_connection):
    monkeypatch.setenv("SERVICEBUS_CONNECTION_STRING", "Endpoint=sb://localhost;")
    monkeypatch.setenv("SERVICEBUS_QUEUE_NAME", "queue.1")
    monkeypatch.setattr(cli, "setup_logging", lambda *_a, **_k: None)
    monkeypatch.setattr(cli, "QueueConnection", SimpleNamespace(open=lambda _config: fake_connection))

    def _run(*argv):
        code = cli.main(list(argv))
        return code, json.loads(capsys.readouterr().out)

    return _run


def test_publish_and_receive_typed(run, fake_queue):
    code, out = run("publish", "hello", "--typed", "--tag", "a", "--tag", "b")
    assert code == 0
    assert out == {"published": True}
    assert len(fake_queue) == 1

    code, out = run("receive", "--typed", "--no-metadata")
    assert code == 0
    assert out == {"Text": "hello", "Tags": ["a", "b"]}
    assert len(fake_queue) == 0


def test_peek_batch_keeps_messages(run, fake_queue):
    run("publish", "one")
    run("publish", "two")

    code, out = run("peek", "--max", "5", "--start", "1")

    assert code == 0
    assert [m["body"] for m in out] == ["one", "two"]
    assert len(fake_queue) == 2


def test_receive_on_empty_queue_prints_null(run):
    code, out = run("receive")
    assert code == 0
    assert out is None


def test_transport_failure_exit_code(run, fake_queue, capsys):
    fake_queue.fail_send = True
    assert cli.main(["publish", "x"]) == 1
