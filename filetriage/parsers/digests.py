"""Cryptographic, fuzzy and human-readable digests of an artifact."""
import hashlib
import uuid

from typing import Dict

import humanhash

from filetriage.config import logger, UNAVAILABLE
from filetriage.hashing import ssdeep_hasher
from filetriage.utils import format_size

HUMANHASH_WORDS = 4

# Fixed namespace for content-derived UUIDs; changing it changes every label.
LABEL_NAMESPACE = uuid.NAMESPACE_OID


def compute_digests(data: bytes) -> Dict[str, str]:
    return {
        "md5": hashlib.md5(data).hexdigest(),
        "sha1": hashlib.sha1(data).hexdigest(),
        "sha256": hashlib.sha256(data).hexdigest(),
        "sha384": hashlib.sha384(data).hexdigest(),
    }


def content_uuid(data: bytes) -> uuid.UUID:
    """Version-5 UUID with the artifact bytes as the name.

    Equivalent to ``uuid.uuid5(LABEL_NAMESPACE, data)``, spelled out because
    ``uuid5`` only accepts bytes names on recent interpreters.
    """
    digest = hashlib.sha1(LABEL_NAMESPACE.bytes + data).digest()
    return uuid.UUID(bytes=digest[:16], version=5)


def human_label(data: bytes, words: int = HUMANHASH_WORDS) -> str:
    return humanhash.humanize(content_uuid(data).hex, words=words)


def fuzzy_hash_file(path: str) -> str:
    """ssdeep signature of the file at *path*, or UNAVAILABLE on any failure."""
    try:
        return ssdeep_hasher.hash_file(path)
    except Exception as e:
        logger.warning(f"ssdeep hash error for '{path}': {type(e).__name__}: {e}")
        return UNAVAILABLE


def compare_fuzzy(hash1: str, hash2: str) -> int:
    """Similarity score (0-100) between two fuzzy hashes; 0 if either is unavailable."""
    if UNAVAILABLE in (hash1, hash2):
        return 0
    return ssdeep_hasher.compare(hash1, hash2)


def digest_artifact(data: bytes, path: str) -> Dict[str, str]:
    """All digest fields of the report.

    Only the fuzzy hash degrades to a sentinel; anything else that fails
    here propagates to the caller.
    """
    digests = {"filesize": format_size(len(data))}
    digests.update(compute_digests(data))
    digests["humanhash"] = human_label(data)
    digests["fuzzy_hash"] = fuzzy_hash_file(path)
    return digests
