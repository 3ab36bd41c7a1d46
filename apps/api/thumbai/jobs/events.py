"""Event envelopes and their signatures.

An envelope is signed over ``id``, ``name``, ``data`` and ``ts``. Delivery
metadata (``attempt``, ``started_at``) is left out so the runner can
re-enqueue an event without re-signing it.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from uuid import uuid4

from thumbai.schemas import GENERATE_THUMBNAIL_EVENT, EventEnvelope, GenerateThumbnailData


def _signing_payload(envelope: EventEnvelope) -> bytes:
    body = {
        "id": envelope.id,
        "name": envelope.name,
        "data": envelope.data,
        "ts": envelope.ts.isoformat(),
    }
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode()


def sign_envelope(envelope: EventEnvelope, signing_key: str) -> str:
    return hmac.new(signing_key.encode(), _signing_payload(envelope), hashlib.sha256).hexdigest()


def verify_envelope(envelope: EventEnvelope, signing_key: str) -> bool:
    """Check an envelope's signature. Unsigned queues accept everything."""
    if not signing_key:
        return True
    if not envelope.signature:
        return False
    return hmac.compare_digest(envelope.signature, sign_envelope(envelope, signing_key))


def build_generate_event(prompt: str, job_id: str, signing_key: str = "") -> EventEnvelope:
    """Create the outbound ``thumbai/thumbnail.generate`` envelope."""
    data = GenerateThumbnailData(prompt=prompt, job_id=job_id)
    envelope = EventEnvelope(
        id=uuid4().hex,
        name=GENERATE_THUMBNAIL_EVENT,
        data=data.model_dump(by_alias=True),
    )
    if signing_key:
        envelope.signature = sign_envelope(envelope, signing_key)
    return envelope
