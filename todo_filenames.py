"""Filename and slug derivation for todo files.

These helpers only produce a deterministic base candidate from a title.
Making the name unique within the todos directory is the store's job.
"""

import re
from datetime import datetime, timezone

MAX_FILENAME_LENGTH = 200
MAX_SLUG_LENGTH = 50
MAX_SUFFIX_ATTEMPTS = 10

# Characters rejected by Windows and/or Unix filesystems, plus control chars
INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

RESERVED_NAMES = {"CON", "PRN", "AUX", "NUL"} | {
    f"{prefix}{n}" for prefix in ("COM", "LPT") for n in range(1, 10)
}


def is_reserved_name(name):
    """Check a name against the Windows reserved device names."""
    return name.upper() in RESERVED_NAMES


def _strip_edges(value):
    return value.strip("-.").strip()


def generate_filename_from_title(title):
    """Turn a title into a case-preserving base filename.

    Returns an empty string when nothing usable is left; callers fall back
    to generate_fallback_filename() in that case.
    """
    name = INVALID_FILENAME_CHARS.sub("", (title or "").strip())
    name = re.sub(r"\s+", "-", name)
    name = _strip_edges(name)
    name = name[:MAX_FILENAME_LENGTH]
    # Keep multi-byte titles under the usual 255-byte filename limit
    name = name.encode("utf-8")[:MAX_FILENAME_LENGTH].decode("utf-8", "ignore")
    name = _strip_edges(name)
    if name and is_reserved_name(name):
        name = f"{name}-todo"
    return name


def generate_slug_from_title(title):
    """Turn a title into a lowercase, URL-safe slug (may be empty)."""
    slug = (title or "").lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug, flags=re.ASCII)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    slug = slug[:MAX_SLUG_LENGTH].strip("-")
    if slug and is_reserved_name(slug):
        slug = f"{slug}-todo"
    return slug


def unique_filename_candidates(base, attempts=MAX_SUFFIX_ATTEMPTS):
    """List base, base-2, ... base-N as collision-avoidance candidates."""
    return [base] + [f"{base}-{i}" for i in range(2, attempts + 1)]


def generate_fallback_filename(now=None):
    """Timestamp-based name like 'todo-2026-01-31T09-15-00'."""
    now = now or datetime.now(timezone.utc)
    timestamp = re.sub(r"[:.]", "-", now.strftime("%Y-%m-%dT%H:%M:%S"))
    return f"todo-{timestamp}"


def validate_filename(filename):
    """Validate a base filename.

    Returns (is_valid, error) where error is None for valid names.
    """
    if not filename:
        return False, "Filename is required"
    if len(filename) > MAX_FILENAME_LENGTH:
        return False, f"Filename must be at most {MAX_FILENAME_LENGTH} characters"
    if INVALID_FILENAME_CHARS.search(filename):
        return False, "Filename contains invalid characters"
    if is_reserved_name(filename):
        return False, "Filename is reserved"
    return True, None
