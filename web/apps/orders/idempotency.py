"""Idempotency keys for the checkout endpoint.

A shopper double-clicking "pay", or a client retrying after a timeout,
sends the same ``Idempotency-Key``. The first request runs the checkout and
stores its response; replays with the same request get that response back
without creating a second order. Reusing a key for a different request
(a different checkout form) is a conflict.
"""

import hashlib, json
from django.db import transaction, IntegrityError
from .models import IdempotencyKey


def request_hash(payload: dict) -> str:
    """SHA-256 of the payload serialized with sorted keys and compact separators."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict):
    """Claim ``key`` for ``payload`` or return the existing record.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``. ``existing`` is
        False when this call created the record; the caller then runs the
        operation and calls ``finalize``.

    Raises:
        ValueError: ``"IDEMPOTENCY_CONFLICT"`` when the key was used with a
            different payload.
    """
    h = request_hash(payload)

    try:
        # Savepoint so an IntegrityError only rolls back the insert.
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(
                key=key, request_hash=h, response_status=0, response_body={}
            )
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise ValueError("IDEMPOTENCY_CONFLICT")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Store the response of the first request so replays can return it."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order"])
