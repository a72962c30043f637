from __future__ import annotations

import io
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from clarity.output import (
    EnvelopeError,
    encode_edn,
    envelope,
    render,
    to_jsonable,
    validate_envelope,
    write_envelope,
)
from clarity.store.model import DateTime


def test_envelope_drops_empty_meta_and_blank_hints():
    env = envelope({"ok": True}, meta={}, hints=["", "  ", "try: clarity items ready"])
    assert env == {"data": {"ok": True}, "_hints": ["try: clarity items ready"]}


def test_to_jsonable_handles_entities_and_values():
    when = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    value = to_jsonable({"due": DateTime(date="2025-01-02"), "at": when, "p": Path("a/b"), "s": {1}})
    assert value == {"due": {"date": "2025-01-02"}, "at": "2025-01-02T03:04:05Z", "p": "a/b", "s": [1]}
    with pytest.raises(TypeError):
        to_jsonable(object())


@pytest.mark.parametrize(
    "env",
    [
        [],
        {"meta": {}},
        {"data": 1, "extra": 2},
        {"data": 1, "meta": []},
        {"data": 1, "_hints": [""]},
        {"data": 1, "_hints": "hint"},
    ],
)
def test_validate_envelope_rejects(env):
    with pytest.raises(EnvelopeError):
        validate_envelope(env)


def test_encode_edn():
    value = {"id": "item-1", "done": False, "parent": None, "tags": ["a", "b"], "n": 2, "with space": 1.5}
    assert encode_edn(value) == '{:id "item-1", :done false, :parent nil, :tags ["a" "b"], :n 2, "with space" 1.5}'
    assert encode_edn({"body": 'say "hi"\n'}) == '{:body "say \\"hi\\"\\n"}'
    assert encode_edn([]) == "[]"
    assert encode_edn({}) == "{}"
    with pytest.raises(EnvelopeError):
        encode_edn(float("nan"))


def test_render_formats():
    env = envelope([1, 2], meta={"count": 2})
    assert json.loads(render(env)) == {"data": [1, 2], "meta": {"count": 2}}
    assert render(env, fmt="EDN") == "{:data [1 2], :meta {:count 2}}"
    assert "\n" in render(env, pretty=True)
    with pytest.raises(EnvelopeError, match="unknown output format"):
        render(env, fmt="yaml")


def test_write_envelope_is_one_line():
    stream = io.StringIO()
    write_envelope(envelope({"a": 1}), stream=stream)
    assert stream.getvalue() == '{"data":{"a":1}}\n'
