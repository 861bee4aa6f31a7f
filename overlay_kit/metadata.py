from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Tuple, Union

from .errors import LabelIndexError, LabelTableError

PathLike = Union[str, Path]


@dataclass(frozen=True)
class LabelTable:
    """
    Immutable class names, index i <-> class i.

    Indexing never wraps: a negative or too-large label id is a broken model
    contract and raises LabelIndexError.
    """

    names: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.names:
            raise LabelTableError("Label table is empty.")

    def __len__(self) -> int:
        return len(self.names)

    def __getitem__(self, index: int) -> str:
        i = int(index)
        if i < 0 or i >= len(self.names):
            raise LabelIndexError(i, len(self.names))
        return self.names[i]

    def lookup(self, label_ids: Iterable[int]) -> List[str]:
        return [self[i] for i in label_ids]

    @classmethod
    def from_text(cls, text: str) -> "LabelTable":
        """
        Parse a newline-delimited listing. Windows line endings and trailing
        blank lines are tolerated; a blank line in the middle is not.
        """

        lines = [line.rstrip("\r").strip() for line in text.split("\n")]
        while lines and not lines[-1]:
            lines.pop()
        for i, line in enumerate(lines):
            if not line:
                raise LabelTableError(f"Blank label at line {i + 1}.")
        return cls(names=tuple(lines))

    @classmethod
    def from_mapping(cls, names: Dict[int, str]) -> "LabelTable":
        if not names:
            raise LabelTableError("Label table is empty.")
        expected = list(range(len(names)))
        if sorted(names) != expected:
            raise LabelTableError(f"Class ids must be contiguous from 0, got {sorted(names)}.")
        return cls(names=tuple(names[i] for i in expected))


def _unquote(value: str) -> str:
    return value.strip().strip("'").strip('"').strip()


def _parse_names_entry(line: str, lineno: int) -> Tuple[int, str]:
    left, sep, right = line.partition(":")
    left = left.strip()
    if not sep or not left.isdigit():
        raise LabelTableError(f"Line {lineno}: expected '<id>: <name>' under names, got {line.strip()!r}.")
    name = _unquote(right)
    if not name:
        raise LabelTableError(f"Line {lineno}: class {left} has an empty name.")
    return int(left), name


def load_class_names(metadata_path: PathLike) -> Dict[int, str]:
    """
    Load class names from an exported model's `metadata.yaml`:

        names:
          0: person
          1: bicycle

    or the inline form `names: [person, bicycle]`. Only the `names` block is
    read, so no YAML library is needed. Ids must be unique and run 0..K-1.
    """

    names: Dict[int, str] = {}
    in_names = False

    with open(metadata_path, "r", encoding="utf-8") as f:
        for lineno, raw in enumerate(f, start=1):
            line = raw.rstrip("\r\n")
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue

            if not line[0].isspace():
                # A top-level key closes the names block.
                if in_names:
                    break
                key, _, rest = stripped.partition(":")
                if key.strip() != "names":
                    continue
                rest = rest.strip()
                if rest.startswith("[") and rest.endswith("]"):
                    items = [_unquote(item) for item in rest[1:-1].split(",")]
                    if not all(items):
                        raise LabelTableError(f"Line {lineno}: empty class name in inline names list.")
                    names = dict(enumerate(items))
                    break
                if rest:
                    raise LabelTableError(f"Line {lineno}: unsupported names value {rest!r}.")
                in_names = True
                continue

            if not in_names:
                continue
            class_id, name = _parse_names_entry(stripped, lineno)
            if class_id in names:
                raise LabelTableError(f"Line {lineno}: duplicate class id {class_id}.")
            names[class_id] = name

    if not names:
        raise LabelTableError(f"No class names found in {metadata_path}.")
    if sorted(names) != list(range(len(names))):
        raise LabelTableError(f"Class ids must be contiguous from 0, got {sorted(names)}.")
    return names


def load_label_table(path: PathLike) -> LabelTable:
    """
    Load labels from a newline-delimited `.txt` listing or a `metadata.yaml`.
    """

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Label file not found: {p}")
    if p.suffix.lower() in {".yaml", ".yml"}:
        return LabelTable.from_mapping(load_class_names(p))
    return LabelTable.from_text(p.read_text(encoding="utf-8"))
