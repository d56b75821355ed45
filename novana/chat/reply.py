"""Post-processing of generated text into a short, presentable reply."""

BANNED_OPENERS = (
    "as an ai",
    "thank you for sharing",
    "i understand your concern",
    "i might need a moment",
)

MAX_SENTENCES = 4
_TERMINALS = ".!?"
_QUOTES = "\"'`"
ELLIPSIS = "…"


def split_sentences(text: str) -> list[str]:
    """Split on sentence-ending punctuation that is followed by whitespace.

    The punctuation stays with its sentence; the whitespace is dropped.
    """
    sentences: list[str] = []
    start = 0
    for i, ch in enumerate(text):
        if ch in _TERMINALS and i + 1 < len(text) and text[i + 1].isspace():
            sentences.append(text[start : i + 1].strip())
            start = i + 1
    sentences.append(text[start:].strip())
    return [s for s in sentences if s]


def _tidy_once(text: str, max_words: int) -> str:
    t = " ".join(text.split())
    t = t.strip(_QUOTES + " ")

    t = " ".join(split_sentences(t)[:MAX_SENTENCES])

    words = t.split(" ")
    if len(words) > max_words:
        t = " ".join(words[:max_words]) + ELLIPSIS

    lower = t.lower()
    if lower.startswith(BANNED_OPENERS):
        parts = split_sentences(t)
        if len(parts) > 1:
            t = " ".join(parts[1:])

    return t.strip()


def tidy_reply(text: str | None, max_words: int = 120) -> str:
    """Normalize raw model output.

    Collapses whitespace, strips wrapping quotes, keeps at most four
    sentences and ``max_words`` words, and drops a leading stock opener
    sentence ("As an AI...") when something else follows it.

    Repeated until stable so the result is idempotent; after the first pass
    every change shortens the text.
    """
    if not text:
        return ""
    current = str(text)
    while True:
        tidied = _tidy_once(current, max_words)
        if tidied == current:
            return tidied
        current = tidied
