import re
from typing import List

_SENTENCE_END = re.compile(r'[.!?]+')
_UNSAFE_CHARS = re.compile(r'[^a-zA-Z0-9.-]')


def split_sentences(text: str) -> List[str]:
    """Split on runs of sentence-terminating punctuation, dropping empty fragments."""
    return [s.strip() for s in _SENTENCE_END.split(text or '') if s.strip()]


def chunk_text(text: str, max_chunk_size: int) -> List[str]:
    """Greedy single-pass packing of sentences into chunks of roughly max_chunk_size.

    A chunk is closed only when it is non-empty and the next sentence would push it
    past the limit, so a single sentence longer than the limit becomes its own
    oversized chunk instead of being cut.
    """
    if max_chunk_size <= 0:
        raise ValueError('max_chunk_size must be positive')
    chunks: List[str] = []
    current = ''
    for sentence in split_sentences(text):
        if len(current) + len(sentence) > max_chunk_size and current:
            chunks.append(current.strip())
            current = sentence + '. '
        else:
            current += sentence + '. '
    if current.strip():
        chunks.append(current.strip())
    return chunks


def word_count(text: str) -> int:
    return len((text or '').split())


def sanitize_filename(name: str, max_len: int = 100) -> str:
    return _UNSAFE_CHARS.sub('_', name or '')[:max_len]


def preview(text: str, size: int) -> str:
    text = text or ''
    return text[:size] + '...' if len(text) > size else text
