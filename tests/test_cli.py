import cli


class _Resp:
    def __init__(self, body, ok=True):
        self._body = body
        self.ok = ok

    def json(self):
        return self._body


def test_apply_posts_node_payload(monkeypatch, capsys):
    sent = {}

    def fake_post(url, json=None, timeout=None):
        sent["url"] = url
        sent["json"] = json
        return _Resp({"queued": True})

    monkeypatch.setattr(cli.requests, "post", fake_post)
    rc = cli.main(
        [
            "--api", "http://api:8000/",
            "apply", "--name", "n2", "--image", "img:v1",
            "--discovery", "--udp-port", "9000",
            "--protocol", "relay", "--protocol", "store",
            "--static-node", "n1",
        ]
    )

    assert rc == 0
    assert sent["url"] == "http://api:8000/nodes"
    assert sent["json"] == {
        "name": "n2",
        "namespace": "default",
        "image": "img:v1",
        "metrics": False,
        "discovery": {"enabled": True, "enr_auto_update": False, "bootstrap_node": "", "udp_port": 9000},
        "protocols": ["relay", "store"],
        "static_node": "n1",
    }
    assert '"queued": true' in capsys.readouterr().out


def test_reconcile_error_sets_exit_code(monkeypatch):
    monkeypatch.setattr(
        cli.requests, "post", lambda url, timeout=None: _Resp({"outcome": "requeue_error", "error": "x"})
    )
    assert cli.main(["reconcile", "n2"]) == 1
