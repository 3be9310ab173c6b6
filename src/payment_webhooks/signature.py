import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)


def compute_signature(raw_body: bytes, shared_secret: str) -> str:
    return hmac.new(shared_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify(raw_body: bytes, provided_signature: str, shared_secret: str) -> bool:
    """Check a hex HMAC-SHA256 signature of ``raw_body`` in constant time.

    Returns False on any malformed input instead of raising.
    """
    try:
        expected = compute_signature(raw_body, shared_secret)
        if len(provided_signature) != len(expected):
            return False
        return hmac.compare_digest(provided_signature.encode("ascii"), expected.encode("ascii"))
    except Exception:
        logger.debug("Signature comparison failed on malformed input", exc_info=True)
        return False


def verify_any(raw_body: bytes, provided_signature: str, secrets: list[str]) -> bool:
    # Every secret is checked so the matching position does not show in timing.
    results = [verify(raw_body, provided_signature, secret) for secret in secrets]
    return any(results)
