import json

import pytest

from conftest import API, FakeResponse, FakeSession
from figma_sync.api import FigmaClient, FigmaDecodeError, FigmaTransportError
from figma_sync.document import fetch_document, load_cached_document


def make_client(routes):
    return FigmaClient("secret", session=FakeSession(routes))


def test_fetch_document_writes_verbatim_cache(tmp_path, document_payload):
    raw = json.dumps(document_payload, indent=1)
    client = make_client({f"{API}/files/KEY": FakeResponse(body=raw)})
    cache = tmp_path / "cache" / "FigmaOutput.json"

    document = fetch_document(client, "KEY", cache)

    assert document.name == "Demo File"
    assert (document.version, document.last_modified) == ("42", "2026-10-01T10:00:00Z")
    assert [page.name for page in document.pages] == ["Home", "Library"]
    assert cache.read_text(encoding="utf-8") == raw
    url, params, headers = client.session.calls[0]
    assert params == {"geometry": "paths"}
    assert headers["X-Figma-Token"] == "secret"


def test_fetch_document_overwrites_previous_cache(tmp_path, document_payload):
    cache = tmp_path / "FigmaOutput.json"
    cache.write_text('{"name": "old", "document": {"id": "0:0"}}', encoding="utf-8")
    client = make_client({f"{API}/files/KEY": FakeResponse(body=document_payload)})

    fetch_document(client, "KEY", cache)

    assert load_cached_document(cache).name == "Demo File"
    assert [p.name for p in tmp_path.iterdir()] == ["FigmaOutput.json"]


def test_transport_error_keeps_cache(tmp_path):
    cache = tmp_path / "FigmaOutput.json"
    cache.write_text('{"name": "old", "document": {"id": "0:0"}}', encoding="utf-8")
    client = make_client({f"{API}/files/KEY": FakeResponse(status_code=403, body="forbidden")})

    with pytest.raises(FigmaTransportError) as excinfo:
        fetch_document(client, "KEY", cache)

    assert excinfo.value.status_code == 403
    assert load_cached_document(cache).name == "old"


def test_unreachable_server_is_transport_error(tmp_path):
    client = make_client({})
    with pytest.raises(FigmaTransportError):
        fetch_document(client, "KEY", tmp_path / "FigmaOutput.json")
    assert not (tmp_path / "FigmaOutput.json").exists()


@pytest.mark.parametrize("body", ["<html>oops</html>", '{"name": "x"}', '["not", "an", "object"]'])
def test_decode_error_is_distinct_and_keeps_cache(tmp_path, body):
    cache = tmp_path / "FigmaOutput.json"
    cache.write_text('{"name": "old", "document": {"id": "0:0"}}', encoding="utf-8")
    client = make_client({f"{API}/files/KEY": FakeResponse(body=body)})

    with pytest.raises(FigmaDecodeError):
        fetch_document(client, "KEY", cache)

    assert load_cached_document(cache).name == "old"


def test_load_cached_document_without_cache_returns_none(tmp_path):
    assert load_cached_document(tmp_path / "missing.json") is None


def test_missing_and_null_fields_default(tmp_path):
    cache = tmp_path / "FigmaOutput.json"
    cache.write_text(
        json.dumps({"document": {"id": "0:0", "children": [{"id": "1:0", "name": None, "fills": None}]}}),
        encoding="utf-8",
    )
    document = load_cached_document(cache)
    page = document.pages[0]
    assert document.name == ""
    assert page.name == "" and page.fills == [] and page.children == []


def test_non_utf8_cache_is_decode_error(tmp_path):
    cache = tmp_path / "FigmaOutput.json"
    cache.write_bytes(b'{"name": "\xff\xfe", "document": {"id": "0:0"}}')
    with pytest.raises(FigmaDecodeError, match="cached Figma document"):
        load_cached_document(cache)
