from __future__ import annotations

from prometheus_client import REGISTRY
from starlette.testclient import TestClient

from tests.testlib.images import encode, noise_image


def test_metadata_reports_header(client: TestClient, photo_png: bytes) -> None:
    r = client.post("/metadata", content=photo_png)
    assert r.status_code == 200
    assert r.json() == {
        "width": 400,
        "height": 300,
        "format": "png",
        "orientation": None,
        "hasAlpha": False,
    }


def test_metadata_reports_orientation(client: TestClient) -> None:
    data = encode(noise_image((40, 30)), "JPEG", orientation=8)
    body = client.post("/metadata", content=data).json()
    assert body["format"] == "jpeg"
    assert body["orientation"] == 8


def test_metadata_with_stats(client: TestClient, graphic_png: bytes) -> None:
    body = client.post("/metadata?stats=1", content=graphic_png).json()
    assert body["stats"]["isOpaque"] is True
    assert body["stats"]["entropy"] == 0
    assert body["lossyPreferred"] is False


def test_metadata_with_stats_for_photo(client: TestClient, photo_png: bytes) -> None:
    body = client.post("/metadata?stats=true", content=photo_png).json()
    assert body["stats"]["entropy"] > 6
    assert body["lossyPreferred"] is True


def test_metadata_rejects_non_image(client: TestClient) -> None:
    r = client.post("/metadata", content=b"plain text")
    assert r.status_code == 500
    assert r.text == "Input is not a recognizable image"


def test_metadata_stats_on_truncated_pixels(client: TestClient, photo_png: bytes) -> None:
    r = client.post("/metadata?stats=1", content=photo_png[: len(photo_png) // 2])
    assert r.status_code == 200
    body = r.json()
    assert body["width"] == 400
    assert "truncated" in body["stats"]["error"]
    assert body["lossyPreferred"] is True


def test_stats_failures_are_counted(client: TestClient, photo_png: bytes) -> None:
    before = REGISTRY.get_sample_value("image_stats_failures_total") or 0.0
    client.post("/metadata?stats=1", content=photo_png[: len(photo_png) // 2])
    assert REGISTRY.get_sample_value("image_stats_failures_total") == before + 1
