import copy

import pytest

from conftest import API, FakeResponse, FakeSession, png_bytes
from figma_sync.api import FigmaClient
from figma_sync.images import classify
from figma_sync.models import AssetState
from figma_sync.sync import (
    process_document,
    reprocess_cached,
    sync_all,
    sync_document,
    sync_image_fills,
    sync_server_rendered_images,
)

RENDER_IDS = ["1:2", "1:3", "1:6", "1:9", "1:10", "2:1"]
FILL_IDS = ["fill-a", "fill-b", "fill-c"]


def render_handler(failing=()):
    def handler(url, params):
        ids = params["ids"].split(",")
        images = {node_id: None if node_id in failing else f"https://cdn/render/{node_id}" for node_id in ids}
        return FakeResponse(body={"err": None, "images": images})

    return handler


def build_routes(payload, failing=()):
    routes = {
        f"{API}/files/KEY": FakeResponse(body=copy.deepcopy(payload)),
        f"{API}/images/KEY": render_handler(failing),
        f"{API}/files/KEY/images": FakeResponse(
            body={"meta": {"images": {**{f: f"https://cdn/fill/{f}" for f in FILL_IDS}, "unused": "https://cdn/u"}}}
        ),
    }
    for node_id in RENDER_IDS:
        routes[f"https://cdn/render/{node_id}"] = FakeResponse(body=png_bytes((32, 32)))
    for fill_id in FILL_IDS:
        routes[f"https://cdn/fill/{fill_id}"] = FakeResponse(body=png_bytes((16, 16)))
    return routes


def make_client(routes):
    return FigmaClient("secret", session=FakeSession(routes))


def cdn_calls(client):
    return [url for url in client.session.urls() if url.startswith("https://cdn/")]


def test_full_sync_downloads_everything(make_config, document_payload):
    config = make_config(max_batch_size=4, batch_delay=2.0)
    client = make_client(build_routes(document_payload, failing={"1:6"}))
    sleeps = []

    summary = sync_all(config, client, sleep=sleeps.append)

    assert [phase.name for phase in summary.phases] == ["document", "rendered_images", "image_fills"]
    assert summary.ok
    document, rendered, fills = summary.phases
    assert document.placeholders == 9
    assert (rendered.downloaded, rendered.failed) == (5, 1)
    assert (fills.downloaded, fills.failed) == (3, 0)
    assert summary.failed_items == 1

    render_calls = [c for c in client.session.calls if c[0] == f"{API}/images/KEY"]
    assert [c[1]["ids"] for c in render_calls] == ["1:2,1:3,1:6,1:9", "1:10,2:1"]
    assert sleeps == [2.0]

    layout = config.layout
    assert classify(layout.server_rendered_images / "1_2.png") is AssetState.VALID
    assert classify(layout.server_rendered_images / "1_6.png") is AssetState.PLACEHOLDER
    assert classify(layout.root / "Share Card.png") is AssetState.VALID
    assert classify(layout.image_fills / "fill-a.png") is AssetState.VALID
    assert not (layout.image_fills / "unused.png").exists()
    assert config.cache_path.is_file()


def test_second_run_has_nothing_to_download(make_config, document_payload):
    config = make_config()
    client = make_client(build_routes(document_payload))
    first = sync_all(config, client)
    assert first.ok and first.failed_items == 0
    calls_after_first = len(client.session.calls)

    second = sync_all(config, client)

    new_urls = client.session.urls()[calls_after_first:]
    assert new_urls == [f"{API}/files/KEY"]
    assert [phase.downloaded for phase in second.phases] == [0, 0, 0]
    assert second.phases[0].deleted == []


def test_placeholders_are_retried_on_next_run(make_config, document_payload):
    config = make_config()
    failing_client = make_client(build_routes(document_payload, failing={"1:2"}))
    sync_all(config, failing_client)
    assert classify(config.layout.server_rendered_images / "1_2.png") is AssetState.PLACEHOLDER

    client = make_client(build_routes(document_payload))
    summary = sync_all(config, client)

    assert summary.phases[1].downloaded == 1
    assert cdn_calls(client) == ["https://cdn/render/1:2"]
    assert classify(config.layout.server_rendered_images / "1_2.png") is AssetState.VALID


def test_removed_page_artifacts_are_reconciled(make_config, document_payload):
    config = make_config()
    report, _ = sync_document(config, make_client(build_routes(document_payload)))
    screens = config.layout.screens
    assert sorted(p.name for p in screens.iterdir()) == [
        "Blurred.prefab",
        "Button.prefab",
        "Landing.prefab",
        "Share Card.prefab",
    ]

    trimmed = copy.deepcopy(document_payload)
    trimmed["document"]["children"].pop()
    report, _ = sync_document(config, make_client(build_routes(trimmed)))

    assert report.ok
    assert sorted(p.name for p in report.deleted) == ["Blurred.prefab", "Button.prefab", "Library.prefab"]
    assert sorted(p.name for p in screens.iterdir()) == ["Landing.prefab", "Share Card.prefab"]


def test_name_collisions_get_counter(make_config, document_payload):
    page = document_payload["document"]["children"][0]
    page["children"].append({"id": "1:99", "name": "Landing", "type": "FRAME"})
    config = make_config()

    sync_document(config, make_client(build_routes(document_payload)))

    names = sorted(p.name for p in config.layout.screens.iterdir())
    assert "Landing.prefab" in names and "Landing_1.prefab" in names


def test_fetch_failure_skips_asset_phases(make_config, document_payload):
    config = make_config()
    routes = build_routes(document_payload)
    routes[f"{API}/files/KEY"] = FakeResponse(status_code=500, body="boom")
    client = make_client(routes)

    summary = sync_all(config, client)

    assert [phase.name for phase in summary.phases] == ["fetch"]
    assert not summary.ok
    assert "500" in summary.phases[0].message
    assert not config.cache_path.exists()
    assert client.session.urls() == [f"{API}/files/KEY"]


def test_asset_phases_require_cache(make_config):
    config = make_config()
    client = make_client({})

    rendered = sync_server_rendered_images(config, client)
    fills = sync_image_fills(config, client)

    assert not rendered.ok and "No cached Figma document" in rendered.message
    assert not fills.ok
    assert client.session.calls == []


def test_reprocess_uses_cache_without_fetching(make_config, document_payload):
    config = make_config()
    sync_document(config, make_client(build_routes(document_payload)))
    client = make_client(build_routes(document_payload))

    summary = reprocess_cached(config, client)

    assert summary.ok
    assert f"{API}/files/KEY" not in client.session.urls()


def test_undecodable_cache_bytes_are_reported(make_config):
    config = make_config()
    config.cache_path.parent.mkdir(parents=True, exist_ok=True)
    config.cache_path.write_bytes(b'{"name": "\xff\xfe", "document": {"id": "0:0", "type": "DOCUMENT"}}')
    client = make_client({})

    rendered = sync_server_rendered_images(config, client)
    reprocessed = reprocess_cached(config, client)

    assert not rendered.ok
    assert "cached Figma document" in rendered.message
    assert not reprocessed.ok
    assert client.session.calls == []


def test_render_decode_error_is_reported(make_config, document_payload):
    config = make_config()
    routes = build_routes(document_payload)
    routes[f"{API}/images/KEY"] = FakeResponse(body="<html>maintenance</html>")
    client = make_client(routes)

    summary = sync_all(config, client)

    rendered = summary.phases[1]
    assert not rendered.ok
    assert "decoding" in rendered.message
    assert summary.phases[2].ok


@pytest.mark.parametrize(
    "selection,expected",
    [(frozenset({"9:9"}), "unknown page ids: 9:9"), (frozenset(), "no pages are selected")],
)
def test_invalid_page_selection_fails_document_phase(make_config, document_payload, selection, expected):
    from figma_sync.models import Document

    config = make_config(selected_page_ids=selection)
    report = process_document(config, Document.from_dict(document_payload))
    assert not report.ok
    assert expected in report.message


def test_page_selection_limits_downloads(make_config, document_payload):
    config = make_config(selected_page_ids={"2:0"})
    client = make_client(build_routes(document_payload))

    summary = sync_all(config, client)

    assert summary.ok
    assert sorted(cdn_calls(client)) == ["https://cdn/fill/fill-a", "https://cdn/fill/fill-c", "https://cdn/render/2:1"]


def test_builder_failure_skips_reconciliation(make_config, document_payload):
    from figma_sync.models import Document

    config = make_config()
    document = Document.from_dict(document_payload)
    process_document(config, document)
    before = sorted(config.layout.pages.iterdir())

    def broken(context):
        raise RuntimeError("scene graph exploded")

    report = process_document(config, document, builder=broken)

    assert not report.ok
    assert "scene graph exploded" in report.message
    assert sorted(config.layout.pages.iterdir()) == before


def test_abort_stops_after_document_phase(make_config, document_payload):
    config = make_config()
    client = make_client(build_routes(document_payload))
    summary = sync_all(config, client, abort=lambda: True)
    assert [phase.name for phase in summary.phases] == ["document"]
