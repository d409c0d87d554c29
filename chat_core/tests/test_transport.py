import httpx
import pytest

from chat_core.config.settings import AppConfig
from chat_core.domain.exceptions import NetworkError
from chat_core.domain.models import WireRequest
from chat_core.providers.transport import HttpTransport


REQ = WireRequest(url="https://api.example.com/v1/chat", headers={"Authorization": "Bearer k"}, body={"a": 1})


def make_client(resp=None, error=None, captured=None):
    class Client:
        def __init__(self, *a, **kw):
            if captured is not None:
                captured["init"] = kw

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None):
            if captured is not None:
                captured.update(url=url, json=json, headers=headers)
            if error is not None:
                raise error
            return resp

    return Client


def test_transport_posts_json(monkeypatch):
    class Resp:
        status_code = 200
        text = '{"ok": true}'

        def json(self):
            return {"ok": True}

    captured = {}
    monkeypatch.setattr("httpx.Client", make_client(resp=Resp(), captured=captured))
    res = HttpTransport(AppConfig(http_timeout=5.0)).post(REQ)
    assert res.ok
    assert res.body == {"ok": True}
    assert captured["url"] == REQ.url
    assert captured["json"] == {"a": 1}
    assert captured["init"] == {"timeout": 5.0, "trust_env": False}


def test_transport_non_json_body(monkeypatch):
    class Resp:
        status_code = 502
        text = "<html>Bad Gateway</html>"

        def json(self):
            raise ValueError("not json")

    monkeypatch.setattr("httpx.Client", make_client(resp=Resp()))
    res = HttpTransport(AppConfig()).post(REQ)
    assert not res.ok
    assert res.body is None
    assert res.text.startswith("<html>")


def test_transport_network_error(monkeypatch):
    monkeypatch.setattr("httpx.Client", make_client(error=httpx.ConnectError("connection refused")))
    with pytest.raises(NetworkError) as exc:
        HttpTransport(AppConfig()).post(REQ)
    assert exc.value.message == "connection refused"
