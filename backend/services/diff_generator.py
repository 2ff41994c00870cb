"""
Diff Generator Service - Word-level diffs for in-place rewrite previews
"""

from __future__ import annotations

import re
from difflib import SequenceMatcher

from models.diff import DiffResult, Run, RunKind

# Whitespace runs, words, single punctuation marks
TOKEN_PATTERN = re.compile(r"(\s+|\w+|[^\w\s])")


def tokenize(text: str) -> list[str]:
    """Split text into atoms; joining the atoms gives back text"""
    return TOKEN_PATTERN.findall(text)


class DiffGenerator:
    """Generate display-oriented word diffs between an original and a candidate text"""

    def generate_diff(self, original_content: str, new_content: str) -> DiffResult:
        """Generate structured diff from original and new content"""
        runs = self.diff_text(original_content, new_content)
        changed = any(run.kind != RunKind.KEPT for run in runs)
        return DiffResult(runs=runs, changed=changed)

    def diff_text(self, original_text: str, new_text: str) -> list[Run]:
        """Diff word by word, then merge alternating changes into single runs"""
        return self._merge_runs(self._extract_chunks(original_text, new_text))

    def _extract_chunks(self, original_text: str, new_text: str) -> list[tuple[RunKind, str]]:
        """Classify atoms into kept/deleted/inserted chunks in stream order"""
        original = tokenize(original_text)
        modified = tokenize(new_text)

        matcher = SequenceMatcher(None, original, modified, autojunk=False)
        chunks = []

        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                chunks.append((RunKind.KEPT, "".join(original[i1:i2])))
                continue
            # Removed content always precedes added content
            if tag in ("delete", "replace"):
                chunks.append((RunKind.DELETED, "".join(original[i1:i2])))
            if tag in ("insert", "replace"):
                chunks.append((RunKind.INSERTED, "".join(modified[j1:j2])))

        return chunks

    def _merge_runs(self, chunks: list[tuple[RunKind, str]]) -> list[Run]:
        """Merge contiguous runs of alternating added/removed text into one removed and one added run"""
        runs: list[Run] = []
        added: str | None = None
        removed: str | None = None

        def flush():
            nonlocal added, removed
            if removed is not None:
                runs.append(Run(kind=RunKind.DELETED, text=removed))
            if added is not None:
                runs.append(Run(kind=RunKind.INSERTED, text=added))
            added = removed = None

        for kind, text in chunks:
            if kind == RunKind.INSERTED:
                added = text if added is None else added + text
            elif kind == RunKind.DELETED:
                removed = text if removed is None else removed + text
            elif len(text) == 1 and text.isspace():
                if added is None and removed is None:
                    runs.append(Run(kind=RunKind.KEPT, text=text))
                    continue
                # The filler belongs to both texts, so it joins both sides
                added = text if added is None else added + text
                removed = text if removed is None else removed + text
            else:
                flush()
                runs.append(Run(kind=RunKind.KEPT, text=text))

        flush()
        return runs


_default_generator = DiffGenerator()


def diff_text(original_text: str, new_text: str) -> list[Run]:
    """Convenience function using a shared generator; the generator holds no state."""
    return _default_generator.diff_text(original_text, new_text)
