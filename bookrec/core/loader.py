"""
Record loader - reads book records from disk.

Accepted layouts:
  * a directory of ``*.json`` files, one book per file (read in sorted name order)
  * a ``.jsonl`` file, one book per line
  * a ``.json`` file holding either a list of books or a single book
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, List, Tuple, Union

from pydantic import ValidationError

from .errors import FormatError
from .schema import Book
from ..util.logging import logger


@dataclass
class LoadReport:
    """Outcome of a lenient load: parsed books plus per-record failures."""
    books: List[Book] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def loaded(self) -> int:
        return len(self.books)

    @property
    def failed(self) -> int:
        return len(self.errors)


def _read_text(path: Path) -> str:
    # Missing or unreadable files propagate as OSError
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except UnicodeDecodeError as e:
        raise FormatError(f"{path.name}: not valid UTF-8 (byte {e.start})") from e


def _raw_records(path: Path) -> Iterator[Tuple[str, Any]]:
    """Yield (source label, parsed-or-raw item) pairs in file order.

    Items that fail JSON decoding are yielded as FormatError instances so that
    callers can decide whether to raise or collect them.
    """
    if path.is_dir():
        for child in sorted(path.glob("*.json")):
            try:
                item = json.loads(_read_text(child))
            except FormatError as e:
                item = e
            except json.JSONDecodeError as e:
                item = FormatError(f"{child.name}: invalid JSON ({e.msg} at line {e.lineno})")
            yield child.name, item
        return

    text = _read_text(path)

    if path.suffix == ".jsonl":
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            label = f"{path.name}:{lineno}"
            try:
                yield label, json.loads(line)
            except json.JSONDecodeError as e:
                yield label, FormatError(f"{label}: invalid JSON ({e.msg})")
        return

    if not text.strip():
        return

    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        # The whole file is unusable, no per-record recovery possible
        raise FormatError(f"{path.name}: invalid JSON ({e.msg} at line {e.lineno})") from e

    if isinstance(document, list):
        for i, item in enumerate(document):
            yield f"{path.name}[{i}]", item
    else:
        yield path.name, document


def _parse(label: str, item: Any) -> Book:
    if isinstance(item, FormatError):
        raise item
    if not isinstance(item, dict):
        raise FormatError(f"{label}: expected a JSON object, got {type(item).__name__}")
    try:
        return Book.model_validate(item)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise FormatError(f"{label}: invalid record ({fields})") from e


def _iter_books(path: Path) -> Iterator[Tuple[str, Union[Book, FormatError]]]:
    seen = set()
    for label, item in _raw_records(path):
        try:
            book = _parse(label, item)
        except FormatError as e:
            yield label, e
            continue
        if book.id in seen:
            yield label, FormatError(f"{label}: duplicate id '{book.id}'")
            continue
        seen.add(book.id)
        yield label, book


def load(path: Union[str, Path]) -> List[Book]:
    """Load all book records from ``path``.

    Args:
        path: Directory of JSON files, a JSON file or a JSON-lines file

    Returns:
        Books in file order. Calling twice on unchanged files yields equal lists.

    Raises:
        OSError: The path is missing or unreadable
        FormatError: Any record cannot be parsed or an id repeats
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Record source not found: {path}")

    books = []
    for _, result in _iter_books(path):
        if isinstance(result, FormatError):
            raise result
        books.append(result)

    logger.log_load_summary(str(path), len(books))
    return books


def load_lenient(path: Union[str, Path]) -> LoadReport:
    """Load records, collecting per-record failures instead of raising.

    File-level problems (missing path, a JSON document that does not decode,
    a single file that is not UTF-8) still raise.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Record source not found: {path}")

    report = LoadReport()
    for _, result in _iter_books(path):
        if isinstance(result, FormatError):
            logger.warning(f"Skipping record: {result}")
            report.errors.append(str(result))
        else:
            report.books.append(result)

    logger.log_load_summary(str(path), report.loaded, report.failed)
    return report
