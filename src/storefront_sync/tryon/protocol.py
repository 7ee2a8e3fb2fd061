# src/storefront_sync/tryon/protocol.py

from __future__ import annotations

"""
Try-on request model and wire protocol.

Submission: POST /run with the request payload -> {"id": "..."} or {"error": ...}.
Status:     GET /status/{id} -> {"status": "...", "output": [...], "error": ...}.
"""

from dataclasses import dataclass
from typing import Any

from ..core.errors import ApplicationError, ProtocolError, ValidationError
from ..polling.task import PollResult
from .images import image_problem, to_image_payload

CATEGORIES = ("tops", "bottoms", "one-pieces")

PENDING_STATUSES = frozenset({"starting", "in_queue", "processing"})
COMPLETED = "completed"
FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TryOnRequest:
    model_image: str | None
    garment_image: str | None
    category: str = "tops"
    cover_feet: bool = False
    adjust_hands: bool = False
    restore_background: bool = False
    restore_clothes: bool = False
    flat_lay: bool = False
    long_top: bool = False

    def problems(self) -> list[str]:
        out: list[str] = []
        for value, label in ((self.model_image, "model image"), (self.garment_image, "garment image")):
            problem = image_problem(value, label)
            if problem:
                out.append(problem)
        if (self.category or "").strip().lower() not in CATEGORIES:
            out.append(f"category must be one of {', '.join(CATEGORIES)} (got {self.category!r})")
        return out

    def validate(self) -> None:
        problems = self.problems()
        if problems:
            raise ValidationError(problems)

    def to_payload(self) -> dict[str, Any]:
        self.validate()
        return {
            "model_image": to_image_payload(str(self.model_image)),
            "garment_image": to_image_payload(str(self.garment_image)),
            "category": self.category.strip().lower(),
            "cover_feet": self.cover_feet,
            "adjust_hands": self.adjust_hands,
            "restore_background": self.restore_background,
            "restore_clothes": self.restore_clothes,
            "flat_lay": self.flat_lay,
            "long_top": self.long_top,
        }


def _error_message(error: Any, default: str) -> str:
    if isinstance(error, dict):
        msg = error.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
        return default
    if isinstance(error, str) and error.strip():
        return error.strip()
    return default


def parse_submission(payload: Any) -> str:
    """Return the job id, or raise ApplicationError / ProtocolError."""
    if not isinstance(payload, dict):
        raise ProtocolError("submission response is not an object")

    error = payload.get("error")
    if error:
        raise ApplicationError(_error_message(error, "Generation failed"))

    job_id = payload.get("id")
    if job_id is None or not str(job_id).strip():
        raise ProtocolError("submission response has no id")
    return str(job_id).strip()


def parse_status(payload: Any) -> PollResult[str]:
    """
    Interpret one status response.

    "completed" without a usable output is a protocol violation, never a success.
    """
    if not isinstance(payload, dict):
        raise ProtocolError("status response is not an object")

    status = payload.get("status")
    if not isinstance(status, str) or not status.strip():
        raise ProtocolError("status response has no status")
    status = status.strip().lower()

    if status in PENDING_STATUSES:
        return PollResult.pending(status)

    if status == COMPLETED:
        output = payload.get("output")
        if isinstance(output, list) and output and isinstance(output[0], str) and output[0].strip():
            return PollResult.succeeded(output[0].strip(), status)
        if isinstance(output, str) and output.strip():
            return PollResult.succeeded(output.strip(), status)
        raise ProtocolError("completed status without output")

    if status == FAILED:
        raise ApplicationError(_error_message(payload.get("error"), "Generation failed"))

    raise ProtocolError(f"unexpected status {status!r}")
