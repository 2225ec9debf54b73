"""Checkpoint credentials: fulfillment ids, collection secrets and their hashes."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import secrets
import uuid

from handoff.core.constants import SECRET_MAX, SECRET_MIN

# ── Identifiers / transfer tokens ───────────────────────────────────


def generate_fulfillment_id() -> str:
    """Return a random 128-bit identifier as 32 lowercase hex chars.

    The id doubles as the single-use transfer token encoded in the
    drop-off checkpoint artifact.
    """
    return uuid.uuid4().hex


def normalize_token(raw: str) -> str:
    """Normalize scanned or typed token input (trimmed, case-insensitive)."""
    return raw.strip().lower()


# ── Collection secret ───────────────────────────────────────────────


def generate_secret() -> str:
    """Draw a 6-digit numeric secret uniformly from 100000–999999."""
    return str(SECRET_MIN + secrets.randbelow(SECRET_MAX - SECRET_MIN + 1))


class SecretHasher:
    """One-way SHA-256 digest used to verify the collection secret.

    The digest is deterministic so it can be compared directly with the
    stored value; nothing is ever decrypted.
    """

    algorithm = "sha256"

    def hash(self, secret: str) -> str:
        return hashlib.new(self.algorithm, secret.encode("utf-8")).hexdigest()

    async def hash_async(self, secret: str) -> str:
        """Hash off the event loop so other requests keep running."""
        return await asyncio.to_thread(self.hash, secret)

    def matches(self, supplied_digest: str, stored_digest: str) -> bool:
        """Constant-time digest comparison."""
        return hmac.compare_digest(supplied_digest, stored_digest)

    def verify(self, secret: str, stored_digest: str) -> bool:
        return self.matches(self.hash(secret), stored_digest)
