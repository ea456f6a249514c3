"""
Filename helpers for uploaded originals.

Client filenames arrive in any script (event photographers here mostly use
Greek); stored names are ASCII only.
"""
import re
import unicodedata
from pathlib import PurePath

_GREEK_TO_LATIN = {
    "α": "a", "β": "v", "γ": "g", "δ": "d", "ε": "e", "ζ": "z", "η": "i",
    "θ": "th", "ι": "i", "κ": "k", "λ": "l", "μ": "m", "ν": "n", "ξ": "x",
    "ο": "o", "π": "p", "ρ": "r", "σ": "s", "ς": "s", "τ": "t", "υ": "y",
    "φ": "f", "χ": "ch", "ψ": "ps", "ω": "o",
    "ά": "a", "έ": "e", "ή": "i", "ί": "i", "ό": "o", "ύ": "y", "ώ": "o",
    "ϊ": "i", "ϋ": "y", "ΐ": "i", "ΰ": "y",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tif", ".tiff"}


def transliterate(text: str) -> str:
    """Map Greek letters to Latin, preserving case of the first letter."""
    out = []
    for ch in text:
        lower = ch.lower()
        mapped = _GREEK_TO_LATIN.get(lower)
        if mapped is None:
            out.append(ch)
        elif ch != lower:
            out.append(mapped[0].upper() + mapped[1:])
        else:
            out.append(mapped)
    return "".join(out)


def sanitize_filename(filename: str, default: str = "photo") -> str:
    """
    Make a client-supplied filename safe to store and display.

    Directory components are dropped, Greek is transliterated, remaining
    accents are stripped and anything outside ``[A-Za-z0-9._-]`` becomes ``_``.
    """
    name = PurePath((filename or "").replace("\\", "/")).name
    name = transliterate(name)
    name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name or default


def safe_extension(filename: str, default: str = ".jpg") -> str:
    """Lower-cased extension of ``filename`` if it is a known image type."""
    suffix = PurePath(sanitize_filename(filename)).suffix.lower()
    return suffix if suffix in ALLOWED_EXTENSIONS else default
