"""
Shared-secret and service-key helpers for the refresh job.
Never import DB models here.
"""
import hmac

from jose import JWTError, jwt

SERVICE_ROLE = "service_role"


# ── Cron secret ───────────────────────────────────────────────────────────────

def verify_cron_secret(
    secret: str,
    authorization: str | None,
    query_secret: str | None,
) -> bool:
    """
    Return True if the request carries the cron secret.

    Accepts either `Authorization: Bearer <secret>` or `?secret=<secret>`.
    An empty configured secret disables the check.
    """
    if not secret:
        return True
    if authorization and hmac.compare_digest(authorization.encode(), f"Bearer {secret}".encode()):
        return True
    return bool(query_secret) and hmac.compare_digest(query_secret.encode(), secret.encode())


# ── Service key ───────────────────────────────────────────────────────────────

def decode_jwt_role(token: str) -> str | None:
    """
    Read the *role* claim of a Supabase key without verifying its signature.
    Returns None on any error (malformed, not a JWT, no role).
    """
    if not token:
        return None
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    role = claims.get("role")
    return role if isinstance(role, str) else None
