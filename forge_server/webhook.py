"""
GitHub push webhook support.

A push to a branch with at least one commit turns into a build of the
repository, named after the repository. Payloads are authenticated with the
X-Hub-Signature-256 HMAC header.
"""

import hashlib
import hmac
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def sign_payload(secret: str, body: bytes) -> str:
    """Compute the X-Hub-Signature-256 header value for a body."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """
    Check a webhook signature header against the body.

    Args:
        secret: Shared webhook secret
        body: Raw request body
        signature: Value of the X-Hub-Signature-256 header, if any

    Returns:
        True if the signature matches
    """
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature)


def image_name_for_repository(name: str) -> str:
    """Derive a valid image name from a repository name."""
    image = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return image or "repository"


def build_request_from_push(payload: Any) -> dict[str, Any] | None:
    """
    Translate a push event into a raw build request.

    Returns:
        Build request body, or None when the event should not trigger a build
        (not a branch push, no commits, or no repository information)
    """
    if not isinstance(payload, dict):
        return None

    ref = payload.get("ref")
    commits = payload.get("commits")
    repository = payload.get("repository")

    if not isinstance(ref, str) or not ref.startswith("refs/heads/"):
        logger.debug(f"Ignoring webhook for ref {ref!r}")
        return None
    if not isinstance(commits, list) or not commits or not isinstance(repository, dict):
        return None

    url = repository.get("clone_url") or repository.get("url")
    name = repository.get("name")
    if not isinstance(url, str) or not isinstance(name, str):
        return None

    for commit in commits:
        if isinstance(commit, dict):
            logger.info(f"Push to {ref} of {name}: {commit.get('id')} - {commit.get('message')}")

    return {"path": url, "name": image_name_for_repository(name)}
