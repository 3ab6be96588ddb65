from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

_FRONTMATTER = re.compile(r"^---[\s\S]*?---\n")
_WIKILINK = re.compile(r"\[\[([^\]]+)\]\]")
_TAG = re.compile(r"(?<![\w&/])#([\w/-]+)")
_BLANK_RUNS = re.compile(r"\n[ \t]*(?:\n[ \t]*)+")


@dataclass
class NoteDocument:
    title: str
    path: Path
    content: str
    tags: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)


@dataclass
class NoteLoadResult:
    documents: list[NoteDocument] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def contents(self) -> list[str]:
        return [document.content for document in self.documents]


def _link_target(raw: str) -> str:
    return raw.split("|", 1)[0].split("#", 1)[0].strip()


def _link_label(match: re.Match[str]) -> str:
    raw = match.group(1)
    if "|" in raw:
        return raw.split("|", 1)[1].strip()
    return raw.strip()


def clean_note_content(text: str) -> str:
    """Strip vault-specific markup so only readable prose reaches the model."""
    cleaned = _FRONTMATTER.sub("", text, count=1)
    cleaned = _WIKILINK.sub(_link_label, cleaned)
    cleaned = _TAG.sub("", cleaned)
    cleaned = _BLANK_RUNS.sub("\n\n", cleaned)
    return cleaned.strip()


def extract_tags(text: str) -> list[str]:
    body = _FRONTMATTER.sub("", text, count=1)
    seen: list[str] = []
    for tag in _TAG.findall(body):
        if tag not in seen:
            seen.append(tag)
    return seen


def extract_links(text: str) -> list[str]:
    seen: list[str] = []
    for raw in _WIKILINK.findall(text):
        target = _link_target(raw)
        if target and target not in seen:
            seen.append(target)
    return seen


def load_note(path: Path) -> NoteDocument:
    raw = path.read_text(encoding="utf-8")
    return NoteDocument(
        title=path.stem,
        path=path,
        content=clean_note_content(raw),
        tags=extract_tags(raw),
        links=extract_links(raw),
    )


def load_notes(paths: Iterable[Path]) -> NoteLoadResult:
    result = NoteLoadResult()
    for path in paths:
        if path.is_dir():
            for child in sorted(path.rglob("*.md")):
                _load_into(result, child)
        else:
            _load_into(result, path)
    return result


def _load_into(result: NoteLoadResult, path: Path) -> None:
    resolved = path.resolve()
    if any(document.path.resolve() == resolved for document in result.documents):
        return
    try:
        result.documents.append(load_note(path))
    except (OSError, UnicodeDecodeError) as exc:
        result.failed[str(path)] = str(exc)
