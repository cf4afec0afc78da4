"""
Payload Rekey — Batch re-encryption of envelopes from one content key to another.

Used when a user's password changes: envelopes sealed under the key derived
from the old password are opened and sealed again under the new one. Plain
payloads are left alone. Each payload is handled independently; a failure is
counted and the original payload is kept, so the batch always completes.

Security Note:
    Plaintext exists in memory only during re-encryption of each payload.
    Never log plaintext or ciphertext values.
"""
import logging
from typing import Optional
from collections.abc import Iterable

from ..exceptions import DecryptionError
from ..models import Payload, PayloadEncoding
from .config import CodecConfig
from .crypto import KeyHandle, decrypt_payload, encrypt_payload, is_encrypted

logger = logging.getLogger("daynotes.codec")


def rekey_payloads(
    payloads: Iterable[Payload],
    old_key: KeyHandle,
    new_key: KeyHandle,
    config: Optional[CodecConfig] = None,
) -> tuple[list[Payload], dict]:
    """Re-encrypt every envelope in ``payloads`` under ``new_key``.

    Args:
        payloads: Payloads to process, in order.
        old_key: Key the existing envelopes were sealed with.
        new_key: Key to seal them with now.
        config: Codec configuration for the new envelopes.

    Returns:
        Tuple of (payloads in the same order, stats dict with keys:
        total, rekeyed, skipped, errors).
    """
    stats = {"total": 0, "rekeyed": 0, "skipped": 0, "errors": 0}
    result: list[Payload] = []

    for payload in payloads:
        stats["total"] += 1
        envelope = (
            payload.encoding is PayloadEncoding.ENVELOPE
            if payload.encoding is not None
            else is_encrypted(payload.text)
        )
        if not envelope:
            stats["skipped"] += 1
            result.append(payload)
            continue
        try:
            plaintext = decrypt_payload(payload.text, old_key)
            result.append(
                Payload(
                    text=encrypt_payload(plaintext, new_key, config),
                    encoding=PayloadEncoding.ENVELOPE,
                )
            )
            stats["rekeyed"] += 1
        except DecryptionError as err:
            logger.error(
                "Error rekeying payload #%d: %s", stats["total"], err,
            )
            stats["errors"] += 1
            result.append(payload)

    logger.info("Rekey complete: %s", stats)
    return result, stats
