"""
JSON codec for the signaling wire protocol.

Every frame is an envelope ``{"type": <tag>, "data": <payload or null>}``.
Offer and answer payloads carry ``{"sdp": ...}``; candidate payloads are flat
``{"candidate": ..., "sdpMLineIndex": ...}`` rather than nested under another
key, which is what existing peers on the relay expect.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import MalformedPayload, UnknownType
from .messages import Answer, Candidate, Offer, PeerReady, SignalingMessage

PEER_READY = "peer-ready"
OFFER = "offer"
ANSWER = "answer"
CANDIDATE = "candidate"

MAX_MLINE_INDEX = (1 << 32) - 1


class DescriptionPayload(BaseModel):
    sdp: str = Field(strict=True)
    # Browsers and older peers put the description type beside the SDP; it is
    # implied by the envelope tag and dropped.
    model_config = ConfigDict(extra="ignore")

    @field_validator("sdp")
    @classmethod
    def _require_sdp(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("sdp must not be empty")
        return value


class CandidatePayload(BaseModel):
    candidate: str = Field(strict=True)
    sdp_mline_index: int = Field(alias="sdpMLineIndex", ge=0, le=MAX_MLINE_INDEX, strict=True)
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _encode_payload(message: SignalingMessage) -> Optional[Dict[str, Any]]:
    if isinstance(message, PeerReady):
        return None
    if isinstance(message, (Offer, Answer)):
        return {"sdp": message.sdp}
    if isinstance(message, Candidate):
        return {"candidate": message.candidate, "sdpMLineIndex": int(message.sdp_mline_index)}
    raise TypeError(f"unsupported signaling message {message!r}")


def message_type(message: SignalingMessage) -> str:
    """
    Return the wire tag for ``message``.
    """

    if isinstance(message, PeerReady):
        return PEER_READY
    if isinstance(message, Offer):
        return OFFER
    if isinstance(message, Answer):
        return ANSWER
    if isinstance(message, Candidate):
        return CANDIDATE
    raise TypeError(f"unsupported signaling message {message!r}")


def encode(message: SignalingMessage) -> str:
    envelope = {"type": message_type(message), "data": _encode_payload(message)}
    return json.dumps(envelope, separators=(",", ":"))


def _decode_description(tag: str, data: Any) -> SignalingMessage:
    payload = _validate(DescriptionPayload, tag, data)
    if tag == OFFER:
        return Offer(sdp=payload.sdp)
    return Answer(sdp=payload.sdp)


def _decode_candidate(tag: str, data: Any) -> SignalingMessage:
    payload = _validate(CandidatePayload, tag, data)
    return Candidate(candidate=payload.candidate, sdp_mline_index=payload.sdp_mline_index)


def _decode_peer_ready(tag: str, data: Any) -> SignalingMessage:
    return PeerReady()


_DECODERS: Dict[str, Callable[[str, Any], SignalingMessage]] = {
    PEER_READY: _decode_peer_ready,
    OFFER: _decode_description,
    ANSWER: _decode_description,
    CANDIDATE: _decode_candidate,
}


def _validate(model: type, tag: str, data: Any) -> Any:
    if not isinstance(data, dict):
        raise MalformedPayload(f"'{tag}' message requires an object payload")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in exc.errors())
        raise MalformedPayload(f"invalid '{tag}' payload ({fields})") from exc


def decode(text: str) -> SignalingMessage:
    """
    Parse one text frame.

    Raises :class:`~clive.errors.UnknownType` for tags this client does not
    handle and :class:`~clive.errors.MalformedPayload` for anything else that
    cannot be decoded.  Neither error is fatal to a session.
    """

    try:
        envelope = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MalformedPayload(f"frame is not valid JSON: {exc}") from exc
    except RecursionError as exc:
        raise MalformedPayload("frame is nested too deeply") from exc

    if not isinstance(envelope, dict):
        raise MalformedPayload("frame is not a JSON object")

    tag = envelope.get("type")
    if not isinstance(tag, str) or not tag:
        raise MalformedPayload("envelope is missing 'type'")

    decoder = _DECODERS.get(tag)
    if decoder is None:
        raise UnknownType(tag)
    return decoder(tag, envelope.get("data"))


__all__ = ["decode", "encode", "message_type"]
