# Fingerprints for change detection and optimistic writes.

import hashlib
import json


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def canonical_json(snapshot: list[dict]) -> str:
    return json.dumps(snapshot, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def fingerprint(snapshot: list[dict]) -> str:
    """Hash of a persisted slot snapshot. Key order and whitespace do not matter."""
    return hash_value(canonical_json(snapshot))
