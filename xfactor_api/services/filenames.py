"""Storage-safe object names for uploaded files.

Uploaded PDFs often carry Hebrew (or other non-Latin) names that object stores
and HTTP headers handle poorly. The original name is kept on the material for
display and ``Content-Disposition``; only the object key is normalized.
"""

import hashlib
import re
import time
import unicodedata
import uuid
from typing import Optional
from urllib.parse import unquote

MIN_SAFE_LENGTH = 3

HEBREW_TO_LATIN = {
    "א": "a", "ב": "b", "ג": "g", "ד": "d", "ה": "h", "ו": "v", "ז": "z",
    "ח": "h", "ט": "t", "י": "y", "כ": "k", "ך": "k", "ל": "l", "מ": "m",
    "ם": "m", "נ": "n", "ן": "n", "ס": "s", "ע": "a", "פ": "p", "ף": "f",
    "צ": "tz", "ץ": "tz", "ק": "k", "ר": "r", "ש": "sh", "ת": "t",
}

_HEBREW_LETTER = re.compile(r"[א-ת]")
_UNSAFE = re.compile(r"[^A-Za-z0-9_\-]")
_EXTENSION = re.compile(r"\.([A-Za-z0-9]{1,10})$")


def split_extension(file_name: str) -> tuple[str, Optional[str]]:
    """Split ``report.PDF`` into (``report``, ``pdf``)."""
    match = _EXTENSION.search(file_name)
    if not match:
        return file_name, None
    return file_name[: match.start()], match.group(1).lower()


def transliterate(text: str) -> str:
    """Hebrew letters via the fixed map, everything else via NFKD to ASCII."""
    text = _HEBREW_LETTER.sub(lambda m: HEBREW_TO_LATIN.get(m.group(0), "x"), text)
    decomposed = unicodedata.normalize("NFKD", text)
    return decomposed.encode("ascii", "ignore").decode("ascii")


def safe_storage_name(file_name: str) -> str:
    """Deterministic ASCII-safe stem for ``file_name`` (extension removed).

    Names that normalize to fewer than three characters fall back to
    ``file_<hash>`` derived from the original name.
    """
    try:
        decoded = unquote(file_name, errors="strict")
    except UnicodeDecodeError:
        decoded = file_name

    stem, _ = split_extension(decoded)
    safe = transliterate(stem)
    safe = re.sub(r"\s+", "_", safe)
    safe = _UNSAFE.sub("_", safe)
    safe = re.sub(r"_{2,}", "_", safe)
    safe = safe.strip("_-").lower()

    if len(safe) < MIN_SAFE_LENGTH:
        digest = hashlib.sha256(file_name.encode("utf-8")).hexdigest()[:8]
        return f"file_{digest}"
    return safe


def build_object_name(file_name: str, prefix: str) -> str:
    """Unique object key ``{prefix}/{millis}_{rand}_{safe}[.ext]``."""
    _, ext = split_extension(file_name)
    suffix = f".{ext}" if ext else ""
    unique = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
    return f"{prefix.strip('/')}/{unique}_{safe_storage_name(file_name)}{suffix}"
