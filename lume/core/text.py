import re
import unicodedata


def normalize(text: str | None) -> str:
    """Lower-case, strip diacritics and squash whitespace."""
    decomposed = unicodedata.normalize("NFD", text or "")
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return re.sub(r"\s+", " ", stripped).strip().lower()


def capitalize_first(text: str) -> str:
    text = text.strip()
    return text[:1].upper() + text[1:].lower()
