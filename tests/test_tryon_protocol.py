# tests/test_tryon_protocol.py

from __future__ import annotations

import pytest

from storefront_sync.core.errors import ApplicationError, ProtocolError, ValidationError
from storefront_sync.tryon.images import to_image_payload
from storefront_sync.tryon.protocol import TryOnRequest, parse_status, parse_submission


@pytest.mark.parametrize("status", ["starting", "in_queue", "processing", "PROCESSING"])
def test_pending_statuses(status: str) -> None:
    result = parse_status({"status": status})
    assert result.done is False
    assert result.status == status.lower()


def test_completed_takes_first_output() -> None:
    result = parse_status({"status": "completed", "output": ["https://cdn.test/a.jpg", "https://cdn.test/b.jpg"]})
    assert result.done is True
    assert result.value == "https://cdn.test/a.jpg"


@pytest.mark.parametrize("output", [None, [], [""], [None]])
def test_completed_without_usable_output_is_protocol_error(output) -> None:
    with pytest.raises(ProtocolError):
        parse_status({"status": "completed", "output": output})


def test_failed_status_uses_error_message_or_default() -> None:
    with pytest.raises(ApplicationError, match="NSFW content detected"):
        parse_status({"status": "failed", "error": {"message": "NSFW content detected"}})
    with pytest.raises(ApplicationError, match="Generation failed"):
        parse_status({"status": "failed"})


@pytest.mark.parametrize("payload", [{}, {"status": ""}, {"status": "exploded"}, ["completed"]])
def test_unknown_or_missing_status_is_protocol_error(payload) -> None:
    with pytest.raises(ProtocolError):
        parse_status(payload)


def test_parse_submission() -> None:
    assert parse_submission({"id": " abc123 "}) == "abc123"
    with pytest.raises(ProtocolError):
        parse_submission({"id": ""})
    with pytest.raises(ApplicationError, match="quota"):
        parse_submission({"id": None, "error": "quota exceeded"})


def test_request_payload_keeps_remote_images_and_flags() -> None:
    req = TryOnRequest(
        model_image="https://img.test/m.jpg",
        garment_image="data:image/png;base64,AAAA",
        category=" One-Pieces ",
        cover_feet=True,
    )
    payload = req.to_payload()
    assert payload["model_image"] == "https://img.test/m.jpg"
    assert payload["garment_image"] == "data:image/png;base64,AAAA"
    assert payload["category"] == "one-pieces"
    assert payload["cover_feet"] is True
    assert set(payload) == {
        "model_image",
        "garment_image",
        "category",
        "cover_feet",
        "adjust_hands",
        "restore_background",
        "restore_clothes",
        "flat_lay",
        "long_top",
    }


def test_unreadable_local_image_is_validation_error(tmp_path) -> None:
    with pytest.raises(ValidationError):
        to_image_payload(str(tmp_path / "missing.jpg"))
