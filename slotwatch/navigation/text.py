import re

_FULLWIDTH_ALNUM = {
    **{chr(c): chr(c - 0xFEE0) for c in range(ord("Ａ"), ord("Ｚ") + 1)},
    **{chr(c): chr(c - 0xFEE0) for c in range(ord("ａ"), ord("ｚ") + 1)},
    **{chr(c): chr(c - 0xFEE0) for c in range(ord("０"), ord("９") + 1)},
}
_TRANSLATION = str.maketrans(_FULLWIDTH_ALNUM)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: str | None) -> str:
    """
    Canonicalize text for comparison.

    Full-width Latin letters and digits become half-width; every whitespace run
    (including the ideographic space) collapses to one space; ends are trimmed.
    """
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text.translate(_TRANSLATION)).strip()
