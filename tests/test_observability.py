import observability as obs


def test_generate_request_id_length_and_uniqueness():
    a = obs.generate_request_id()
    b = obs.generate_request_id()
    assert len(a) == 8 and len(b) == 8
    assert a != b


def test_emit_event_routes_to_severity_methods_and_hashes_user(monkeypatch):
    calls = {"info": [], "warning": [], "error": []}

    class _Logger:
        def info(self, event, **fields):
            calls["info"].append((event, fields))

        def warning(self, event, **fields):
            calls["warning"].append((event, fields))

        def error(self, event, **fields):
            calls["error"].append((event, fields))

    monkeypatch.setattr(obs.structlog, "get_logger", lambda: _Logger())

    obs.emit_event("evt_info", a=1)
    obs.emit_event("pin_lockout", severity="warn", user_id="42")
    obs.emit_event("evt_error", severity="error", c=3)

    assert calls["info"] == [("evt_info", {"a": 1})]
    event, fields = calls["warning"][0]
    assert event == "pin_lockout"
    assert fields["user_id"] == obs._hash_identifier("42") != "42"
    assert calls["error"][0][0] == "evt_error"


def test_redact_sensitive_keys():
    out = obs._redact_sensitive(None, "info", {"event": "x", "pin": "1234", "pin_hint": "mom", "count": 1})
    assert out["pin"] == "[REDACTED]"
    assert out["pin_hint"] == "[REDACTED]"
    assert out["count"] == 1
    assert out["event"] == "x"


def test_bind_user_context_skips_empty(monkeypatch):
    called = {}
    monkeypatch.setattr(obs.structlog.contextvars, "bind_contextvars", lambda **kw: called.update(kw))
    obs.bind_user_context(user_id=None)
    assert called == {}
    obs.bind_user_context(user_id="u1")
    assert called["user_id"] == obs._hash_identifier("u1")


def test_redact_pin_keys_match_whole_name_only():
    out = obs._redact_sensitive(None, "info", {
        "event": "x", "current_pin": "1111", "pinned": True, "shipping": "fast", "auth_token": "t",
    })
    assert out["current_pin"] == "[REDACTED]"
    assert out["auth_token"] == "[REDACTED]"
    assert out["pinned"] is True
    assert out["shipping"] == "fast"
