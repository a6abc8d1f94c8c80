"""In-memory full-text search over notes and their label names."""

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from blocknotes.config import BlockNotesConfig, config as default_config
from blocknotes.exceptions import BlockNotesError
from blocknotes.models.schema import Label, Note

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\w+")

TITLE_SCORE = 10
CONTENT_SCORE = 5
LABEL_SCORE = 3


def tokenize(text: str) -> List[str]:
    """Lower-cased word tokens of ``text``."""
    return TOKEN_PATTERN.findall(text.lower())


def highlight(text: str, query: str, open_tag: str = "<mark>", close_tag: str = "</mark>") -> str:
    """Wrap every case-insensitive occurrence of ``query`` in ``text``.

    An empty query returns the text unchanged.
    """
    if not query:
        return text
    pattern = re.compile(re.escape(query), re.IGNORECASE)
    return pattern.sub(lambda m: f"{open_tag}{m.group(0)}{close_tag}", text)


@dataclass(frozen=True)
class IndexEntry:
    """Searchable snapshot of one note."""

    note: Note
    title: str
    content: str
    label_names: List[str]
    tokens: Set[str]


@dataclass
class Highlights:
    """Matched fields with the query emphasised; None/empty when not matched."""

    title: Optional[str] = None
    content: Optional[str] = None
    labels: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.title is not None:
            result["title"] = self.title
        if self.content is not None:
            result["content"] = self.content
        if self.labels:
            result["labels"] = list(self.labels)
        return result


@dataclass
class SearchResult:
    """A matching note with its relevance score and highlights."""

    note: Note
    score: int
    highlights: Highlights


class SearchIndex:
    """Inverted token index rebuilt in full from note and label snapshots.

    Matching is substring based: a note matches when its title, content or
    one of its label names contains the trimmed, lower-cased query. The token
    map only narrows the candidates; every candidate is verified against the
    raw fields. The index never writes to persistence.
    """

    def __init__(self, cfg: Optional[BlockNotesConfig] = None):
        self.config = cfg or default_config
        self._entries: Dict[str, IndexEntry] = {}
        self._postings: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, note_id: object) -> bool:
        return note_id in self._entries

    def rebuild(self, notes: Iterable[Note], labels: Iterable[Label]) -> "SearchIndex":
        """Replace the index with one built from the given snapshots.

        Trashed notes are left out. Label ids that do not resolve are ignored.
        """
        label_names = {label.id: label.name for label in labels}
        entries: Dict[str, IndexEntry] = {}
        postings: Dict[str, Set[str]] = {}

        for note in notes:
            if note.is_trashed:
                continue
            names = [label_names[lid] for lid in note.labels if lid in label_names]
            content = note.plain_text
            tokens = set(tokenize(note.title))
            tokens.update(tokenize(content))
            for name in names:
                tokens.update(tokenize(name))
            entries[note.id] = IndexEntry(
                note=note,
                title=note.title,
                content=content,
                label_names=names,
                tokens=tokens,
            )
            for token in tokens:
                postings.setdefault(token, set()).add(note.id)

        with self._lock:
            self._entries = entries
            self._postings = postings
        logger.debug(f"Search index rebuilt: {len(entries)} notes, {len(postings)} tokens")
        return self

    def _candidates(self, entries: Dict[str, IndexEntry], postings: Dict[str, Set[str]],
                    words: List[str]) -> List[IndexEntry]:
        if not words:
            return list(entries.values())
        allowed: Optional[Set[str]] = None
        for word in words:
            matching: Set[str] = set()
            for token, note_ids in postings.items():
                if word in token:
                    matching |= note_ids
            allowed = matching if allowed is None else allowed & matching
            if not allowed:
                return []
        return [entry for note_id, entry in entries.items() if note_id in allowed]

    def query(self, q: str) -> List[SearchResult]:
        """Ranked matches for ``q``; an empty query yields no results.

        Score is 10 for a title match, +5 for a content match and +3 per
        matching label name. Ties keep index order.
        """
        needle = (q or "").strip().lower()
        if not needle:
            return []

        with self._lock:
            entries = self._entries
            postings = self._postings

        open_tag = self.config.highlight_open
        close_tag = self.config.highlight_close
        results: List[SearchResult] = []
        for entry in self._candidates(entries, postings, tokenize(needle)):
            highlights = Highlights()
            score = 0
            if needle in entry.title.lower():
                highlights.title = highlight(entry.title, needle, open_tag, close_tag)
                score += TITLE_SCORE
            if needle in entry.content.lower():
                highlights.content = highlight(entry.content, needle, open_tag, close_tag)
                score += CONTENT_SCORE
            highlights.labels = [
                highlight(name, needle, open_tag, close_tag)
                for name in entry.label_names
                if needle in name.lower()
            ]
            score += LABEL_SCORE * len(highlights.labels)
            if score:
                results.append(SearchResult(note=entry.note, score=score, highlights=highlights))

        results.sort(key=lambda r: r.score, reverse=True)
        return results


class RebuildScheduler:
    """Trailing-edge debounce for index rebuilds.

    Each ``request`` restarts the timer, so a burst of mutations triggers a
    single rebuild ``delay`` seconds after the last one. ``flush`` runs a
    pending rebuild immediately; readers call it before querying.
    """

    def __init__(self, rebuild: Callable[[], Any], delay: float = 0.3):
        self._rebuild = rebuild
        self.delay = delay
        self._timer: Optional[threading.Timer] = None
        self._dirty = False
        self._lock = threading.RLock()

    @property
    def pending(self) -> bool:
        return self._dirty

    def request(self) -> None:
        with self._lock:
            self._dirty = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self.delay <= 0:
                self.flush()
                return
            self._timer = threading.Timer(self.delay, self._run)
            self._timer.daemon = True
            self._timer.start()

    def _run(self) -> None:
        with self._lock:
            self._timer = None
            if not self._dirty:
                return
            self._dirty = False
            try:
                self._rebuild()
            except BlockNotesError as e:
                # Left dirty so the next flush retries and raises to its caller
                self._dirty = True
                logger.error(f"Scheduled search index rebuild failed: {e}")

    def flush(self) -> bool:
        """Run a pending rebuild now; return whether one ran."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if not self._dirty:
                return False
            self._dirty = False
            try:
                self._rebuild()
            except BlockNotesError:
                self._dirty = True
                raise
            return True

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
