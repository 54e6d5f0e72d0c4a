"""
Web search documents in the request log, and citation rewriting in answers.

Each document a web search returns gets a stable index for the whole turn.
The document is handed to the model wrapped in a web-archive block that
tells it to cite the source as ``[^N]``; once the answer is complete those
markers are rewritten into ``[^N](url)`` links.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_REFERENCE_RE = re.compile(r"\[\^(\d+)\](?!\()")


@dataclass
class TurnContext:
    """URL to index map shared by every round of one user turn."""

    links: dict[int, str] = field(default_factory=dict)

    def link_index(self, url: str) -> int:
        for index, known in self.links.items():
            if known == url:
                return index
        index = len(self.links) + 1
        self.links[index] = url
        return index


def format_as_web_archive(document: str, title: str, index: int) -> str:
    return (
        f'<web_archive index="{index}" title="{title}">\n'
        f"{document.strip()}\n"
        f"</web_archive>\n"
        f"Cite this source as [^{index}]."
    )


def fix_web_references(text: str, links: dict[int, str]) -> str:
    """Rewrite ``[^N]`` markers whose index is known into markdown links."""
    if not links or "[^" not in text:
        return text

    def replace(match: re.Match) -> str:
        url = links.get(int(match.group(1)))
        if url is None:
            return match.group(0)
        return f"{match.group(0)}({url})"

    return _REFERENCE_RE.sub(replace, text)
