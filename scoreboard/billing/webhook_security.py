import hashlib
import hmac


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_lemonsqueezy_signature(payload: bytes, signature: str, secret: str) -> bool:
    if not secret or not signature:
        return False
    computed = compute_signature(payload, secret)
    return hmac.compare_digest(computed, signature.strip())
