import re
from typing import List


_SENTENCE_END = r"[\.!?。！？…]"


def estimate_speech_duration(text: str) -> float:
    """Rough narration length: ~150 words per minute, ~5 characters per word."""
    return max(len(text) / 5 / 150 * 60, 1.0)


def _hard_wrap(sentence: str, max_chars: int) -> List[str]:
    parts: List[str] = []
    buf = ""
    for word in sentence.split():
        while len(word) > max_chars:
            if buf:
                parts.append(buf)
                buf = ""
            parts.append(word[:max_chars])
            word = word[max_chars:]
        candidate = f"{buf} {word}" if buf else word
        if len(candidate) <= max_chars:
            buf = candidate
        else:
            parts.append(buf)
            buf = word
    if buf:
        parts.append(buf)
    return parts


def split_text_for_tts(text: str, max_chars: int = 280) -> List[str]:
    """Sentence-aware chunking with a hard limit by characters.

    Keeps sentences together when possible for more natural prosody in TTS;
    sentences longer than the limit are wrapped on word boundaries.
    """
    if len(text.strip()) <= max_chars:
        return [text.strip()] if text.strip() else []
    sentences = re.split(rf"(?<={_SENTENCE_END})\s+", text.strip())
    chunks: List[str] = []
    buf: List[str] = []
    cur = 0
    for sent in sentences:
        s = sent.strip()
        if not s:
            continue
        if len(s) > max_chars:
            if buf:
                chunks.append(" ".join(buf))
                buf, cur = [], 0
            chunks.extend(_hard_wrap(s, max_chars))
            continue
        extra = len(s) + (1 if buf else 0)
        if cur + extra <= max_chars:
            buf.append(s)
            cur += extra
        else:
            chunks.append(" ".join(buf))
            buf = [s]
            cur = len(s)
    if buf:
        chunks.append(" ".join(buf))
    return chunks
