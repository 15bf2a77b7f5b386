"""Process-wide policy holder used by the HTTP layer."""

from __future__ import annotations

import logging

from kube_authz.authorizer import PolicyHolder
from kube_authz.config import settings
from kube_authz.loader import load_paths

logger = logging.getLogger(__name__)

# ── Policy state ──────────────────────────────────────────────────

_holder: PolicyHolder | None = None


def init_policies() -> PolicyHolder:
    """Create the holder and load configured policy paths. Called on startup."""
    global _holder  # noqa: PLW0603

    holder = PolicyHolder(
        ignored_kinds=settings.authz_ignored_kinds,
        require_namespaces=settings.authz_require_namespaces,
    )
    if settings.authz_policy_paths:
        holder.reload(load_paths(settings.authz_policy_paths))
        logger.info("Loaded policies from %s", ", ".join(settings.authz_policy_paths))
    else:
        logger.warning("No AUTHZ_POLICY_PATHS configured, every request will be denied")
    _holder = holder
    return holder


def get_holder() -> PolicyHolder:
    """Return the current holder, creating an empty one on first use."""
    global _holder  # noqa: PLW0603

    if _holder is None:
        _holder = PolicyHolder(
            ignored_kinds=settings.authz_ignored_kinds,
            require_namespaces=settings.authz_require_namespaces,
        )
    return _holder


def reset_policies() -> None:
    """Drop the holder (for testing)."""
    global _holder  # noqa: PLW0603

    _holder = None
