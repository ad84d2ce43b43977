"""Conversation threading — groups a flat message list into threads.

Three signals link a message to its parent, in priority order:

1. ``In-Reply-To`` naming another message's id.
2. ``References``, walked from the nearest ancestor backwards.
3. The normalised subject, matched against the oldest message that shares it.

Threads are always rebuilt from scratch; nothing here is incremental.
"""

from __future__ import annotations

import re

from thrum.models import EmailSummary

_REPLY_PREFIX = re.compile(r"^re:\s*", re.IGNORECASE)


def strip_reply_prefix(subject: str) -> str:
    """Remove every leading ``Re:`` while keeping the case of the rest."""
    text = subject.strip()
    while True:
        stripped = _REPLY_PREFIX.sub("", text, count=1)
        if stripped == text:
            return text
        text = stripped


def normalize_subject(subject: str) -> str:
    return strip_reply_prefix(subject).lower()


def _find_parent(
    index: int,
    email: EmailSummary,
    by_id: dict[str, int],
    by_subject: dict[str, int],
) -> int | None:
    if email.in_reply_to:
        parent = by_id.get(email.in_reply_to)
        if parent is not None and parent != index:
            return parent

    for ref in reversed(email.references):
        parent = by_id.get(ref)
        if parent is not None and parent != index:
            return parent

    key = normalize_subject(email.subject)
    if key:
        parent = by_subject.get(key)
        if parent is not None and parent != index:
            return parent

    return None


def _resolve_root(start: int, parents: list[int | None], roots: dict[int, int]) -> int:
    """Follow parent links from ``start`` to the top of its chain.

    A malformed reference graph can loop (two messages citing each other).
    When the walk comes back to a node already on the current path, the loop
    members share one root: the highest index among them, i.e. the oldest
    message. That choice does not depend on where the walk started.
    """
    path: list[int] = []
    on_path: set[int] = set()
    node = start

    while True:
        if node in roots:
            root = roots[node]
            break
        if node in on_path:
            cycle = path[path.index(node):]
            root = max(cycle)
            break
        path.append(node)
        on_path.add(node)
        parent = parents[node]
        if parent is None:
            root = node
            break
        node = parent

    for visited in path:
        roots[visited] = root
    return root


def build_threads(emails: list[EmailSummary]) -> list[list[int]]:
    """Group ``emails`` into threads of indices.

    ``emails`` is expected newest-first, so within a thread the indices are
    ordered descending (oldest message first). Threads are ordered by their
    smallest index, which puts the thread with the newest message on top.
    """
    by_id: dict[str, int] = {}
    for i, email in enumerate(emails):
        if email.message_id and email.message_id not in by_id:
            by_id[email.message_id] = i

    # Scan oldest-first so the earliest message owns the subject key.
    by_subject: dict[str, int] = {}
    for i in range(len(emails) - 1, -1, -1):
        key = normalize_subject(emails[i].subject)
        if key and key not in by_subject:
            by_subject[key] = i

    parents = [_find_parent(i, e, by_id, by_subject) for i, e in enumerate(emails)]

    roots: dict[int, int] = {}
    buckets: dict[int, list[int]] = {}
    for i in range(len(emails)):
        root = _resolve_root(i, parents, roots)
        buckets.setdefault(root, []).append(i)

    threads = [sorted(members, reverse=True) for members in buckets.values()]
    threads.sort(key=lambda members: members[-1])
    return threads
