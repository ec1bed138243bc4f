"""Stable issue identities.

A fingerprint is a SHA-256 digest over (file path, line, issue id, title,
iteration id, file content hash). It is a pure function of those six values:
no clock, no randomness, no dependence on the order issues were produced in.

The content hash is part of the identity on purpose: the same finding on
changed code is treated as a new issue rather than attempting semantic
line-tracking across revisions.
"""

from __future__ import annotations

import hashlib
import json


def compute_fingerprint(
    file_path: str,
    line: int,
    issue_id: str,
    title: str,
    iteration_id: int,
    content_hash: str,
) -> str:
    # JSON-encode the tuple rather than joining with a delimiter so that a
    # ':' inside a title or path can never make two distinct tuples collide.
    payload = json.dumps(
        [file_path, int(line), issue_id, title, int(iteration_id), content_hash],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_metadata_fingerprint(issue_id: str, title: str, iteration_id: int) -> str:
    """Fingerprint for PR-level issues (title, description, commit messages)."""
    return compute_fingerprint("", 0, issue_id, title, iteration_id, "")


def hash_content(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
