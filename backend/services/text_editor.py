"""
Text Editor Service - In-memory document surface

The document is an ordered list of atoms. Positions handed out by the delete
and insert methods are atom indices; callers treat them as opaque cursors and
pass each returned position to the next insert.
"""

from __future__ import annotations

from models.document import Atom
from models.operation import OperationSite

TEXT = "text"
GENERATED = "generated"
ADDITION = "addition"
DELETION = "deletion"
SELECTION = "selection"


class TextEditorService:
    """Plain-text document with diff and selection markers"""

    def __init__(self, text: str = ""):
        self._atoms: list[Atom] = [Atom(kind=TEXT, text=text)] if text else []
        self._range: tuple[int, int] | None = None

    # ========== Reading ==========

    def get_atoms(self) -> list[Atom]:
        return list(self._atoms)

    def get_plain_text(self) -> str:
        """Text as it reads with pending deletions hidden"""
        return "".join(atom.text for atom in self._atoms if atom.kind != DELETION)

    def get_range(self) -> tuple[int, int] | None:
        return self._range

    def set_range(self, start: int | None, end: int | None = None) -> None:
        if start is None:
            self._range = None
            return
        end = start if end is None else end
        start, end = min(start, end), max(start, end)
        length = len(self.get_plain_text())
        if start < 0 or end > length:
            raise ValueError(f"Range ({start}, {end}) outside document of length {length}")
        self._range = (start, end)

    def get_operation_site(self) -> OperationSite:
        if not self.get_plain_text().strip():
            return OperationSite.EMPTY_DOCUMENT
        if self._range is None:
            return OperationSite.NONE
        start, end = self._range
        return OperationSite.SELECTION if end > start else OperationSite.CURSOR

    # ========== Snapshots ==========

    def snapshot(self) -> tuple[tuple[Atom, ...], tuple[int, int] | None]:
        return tuple(self._atoms), self._range

    def restore(self, snapshot: tuple[tuple[Atom, ...], tuple[int, int] | None]) -> None:
        atoms, text_range = snapshot
        self._atoms = list(atoms)
        self._range = text_range

    # ========== Editing ==========

    def _split_at(self, offset: int) -> int:
        """Split the atom containing plain-text offset; return the atom index starting there"""
        position = 0
        for index, atom in enumerate(self._atoms):
            if atom.kind == DELETION:
                continue
            if offset == position:
                return index
            end = position + len(atom.text)
            if offset < end:
                cut = offset - position
                self._atoms[index:index + 1] = [
                    Atom(kind=atom.kind, text=atom.text[:cut]),
                    Atom(kind=atom.kind, text=atom.text[cut:]),
                ]
                return index + 1
            position = end
        return len(self._atoms)

    def delete_range(self, text_range: tuple[int, int]) -> int:
        """Remove the text in range; return the position where it was"""
        start, end = text_range
        first = self._split_at(start)
        last = self._split_at(end)
        del self._atoms[first:last]
        self._range = None
        return first

    def delete_document(self) -> int:
        self._atoms = []
        self._range = None
        return 0

    def _insert(self, kind: str, text: str, position: int) -> int:
        if not text:
            return position
        self._atoms.insert(position, Atom(kind=kind, text=text))
        return position + 1

    def insert_addition_atom(self, text: str, position: int) -> int:
        return self._insert(ADDITION, text, position)

    def insert_deletion_atom(self, text: str, position: int) -> int:
        return self._insert(DELETION, text, position)

    def insert_generated_text(self, text: str, position: int) -> int:
        return self._insert(GENERATED, text, position)

    def insert_selection_atom(self, text: str, position: int) -> int:
        return self._insert(SELECTION, text, position)
