"""
Unit tests for queue item model.
"""

import re

import pytest

from stagehand.queue.models import QueueItem, derive_source_img_url, generate_item_id

pytestmark = pytest.mark.unit


def test_generate_item_id_format():
    assert re.fullmatch(r"\d{13}-[a-z0-9]{7}", generate_item_id())


def test_generate_item_id_varies():
    assert len({generate_item_id() for _ in range(50)}) == 50


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"original_image_url": "https://a/1.jpg", "image_url": "https://b/2.jpg"}, "https://a/1.jpg"),
        ({"download_url": "http://a/dl.png", "image_url": "/cache/x.png"}, "http://a/dl.png"),
        ({"image_url": "https://b/2.jpg"}, "https://b/2.jpg"),
        ({"image_url": "/cache/images/x.jpg"}, None),
        ({}, None),
    ],
)
def test_derive_source_img_url(payload, expected):
    assert derive_source_img_url(payload) == expected


def test_media_paths():
    assert QueueItem({"image_url": "/a.jpg"}).media_paths == ["/a.jpg"]
    assert QueueItem({"image_urls": ["/a.jpg", "/b.jpg"], "image_url": "/a.jpg"}).media_paths == [
        "/a.jpg",
        "/b.jpg",
    ]
    assert QueueItem({"is_video": True, "video_url": "/v.mp4"}).media_paths == ["/v.mp4"]
    assert QueueItem({}).media_paths == []


def test_delivery_helpers():
    item = QueueItem({"title": "x"}, delivery_status={"telegram": True, "discord": False})

    assert item.is_delivered("telegram") is True
    assert item.is_delivered("discord") is False
    assert item.is_fully_delivered(["telegram"]) is True
    assert item.is_fully_delivered(["telegram", "discord"]) is False
    assert item.pending_destinations(["telegram", "discord"]) == ["discord"]


def test_to_dict_is_flat():
    item = QueueItem(
        {"title": "Sunset", "site_name": "e621"},
        id="1-abc",
        timestamp="2024-01-01T00:00:00+00:00",
        delivery_status={"telegram": False},
        source_img_url="https://a/1.jpg",
    )

    assert item.to_dict() == {
        "title": "Sunset",
        "site_name": "e621",
        "id": "1-abc",
        "timestamp": "2024-01-01T00:00:00+00:00",
        "delivery_status": {"telegram": False},
        "source_img_url": "https://a/1.jpg",
    }


def test_from_dict_reads_legacy_status():
    item = QueueItem.from_dict({"title": "Old", "id": "1-a", "postedTo": {"telegram": True}})

    assert item.delivery_status == {"telegram": True}
    assert "postedTo" not in item.payload
    assert "postedTo" not in item.to_dict()


def test_from_dict_fills_missing_fields():
    item = QueueItem.from_dict({"title": "Bare"})

    assert item.id
    assert item.timestamp
    assert item.delivery_status == {}
    assert item.title == "Bare"


def test_from_dict_rejects_non_object():
    with pytest.raises(ValueError):
        QueueItem.from_dict(["not", "a", "dict"])


def test_copy_is_independent():
    item = QueueItem({"image_urls": ["/a.jpg"]}, delivery_status={"telegram": False})
    clone = item.copy()
    clone.delivery_status["telegram"] = True
    clone.payload["image_urls"].append("/b.jpg")

    assert item.delivery_status["telegram"] is False
    assert item.payload["image_urls"] == ["/a.jpg"]
