"""Recipient email normalizer.

Lowercases and strips the address and checks its shape.  The local part is
otherwise kept exactly as given: the address is part of the legal record,
so provider-specific rewrites (Gmail dots, ``+tag`` removal) are not
applied.

Safety rule: raw values are never logged.
"""
from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[a-z0-9._%+'-]+@[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,}$")
_MAX_LENGTH = 320


def normalize_email(raw: str | None) -> str | None:
    """Return *raw* in canonical lowercase form, or ``None`` if unusable.

    Parameters
    ----------
    raw:
        Address as typed by the notification's creator.

    Returns
    -------
    str | None
        Lowercased, whitespace-stripped address, or ``None`` for empty
        input, input over 320 characters, or anything not shaped like
        ``local@domain.tld``.
    """
    if raw is None:
        return None

    stripped = raw.strip().lower()
    if not stripped or len(stripped) > _MAX_LENGTH:
        return None

    if not _EMAIL_RE.match(stripped):
        logger.debug("normalize_email: rejected address (length=%d)", len(stripped))
        return None

    return stripped
