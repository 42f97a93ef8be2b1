"""Per-day markdown log storage, listing and search."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

FILE_EXTENSION = ".md"
DATE_FORMAT = "%Y-%m-%d"


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string.

    Raises:
        ValueError: If the string is not a valid date
    """
    return datetime.strptime(value.strip(), DATE_FORMAT).date()


@dataclass
class SectionMatch:
    """Lines of one section that matched a search, with context."""

    section: str
    # (line, is_match) pairs in document order
    lines: list[tuple[str, bool]] = field(default_factory=list)


@dataclass
class SearchHit:
    """All matching sections of one day's log."""

    day: date
    sections: list[SectionMatch] = field(default_factory=list)


class LogStore:
    """One markdown document per calendar date in a single directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, day: date) -> Path:
        return self.root / f"{day.strftime(DATE_FORMAT)}{FILE_EXTENSION}"

    def exists(self, day: date) -> bool:
        return self.path_for(day).exists()

    def write(self, day: date, content: str) -> Path:
        """Write (or overwrite) the document for a day."""
        self.ensure_root()
        path = self.path_for(day)
        path.write_text(content, encoding="utf-8")
        logger.info("Wrote %s (%d bytes)", path, len(content.encode("utf-8")))
        return path

    def read(self, day: date) -> str | None:
        path = self.path_for(day)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def document_paths(self) -> list[Path]:
        """Paths of all documents, newest date first."""
        if not self.root.exists():
            return []
        paths = []
        for path in self.root.glob(f"*{FILE_EXTENSION}"):
            try:
                parse_date(path.stem)
            except ValueError:
                continue
            paths.append(path)
        return sorted(paths, key=lambda p: p.stem, reverse=True)

    def list_dates(self) -> list[date]:
        """Dates that have a document, newest first."""
        return [parse_date(path.stem) for path in self.document_paths()]

    def search(self, term: str) -> list[SearchHit]:
        """Case-insensitive search across all documents.

        A matching line opens a section match; following non-blank,
        non-heading lines of the same section are kept as context until a
        blank line or heading closes it.
        """
        needle = term.lower()
        hits = []
        for path in self.document_paths():
            content = path.read_text(encoding="utf-8")
            if needle not in content.lower():
                continue

            hit = SearchHit(day=parse_date(path.stem))
            section_name = ""
            current: SectionMatch | None = None

            for line in content.split("\n"):
                if line.startswith("## "):
                    section_name = line[3:]
                    current = None

                if needle in line.lower():
                    if current is None:
                        current = SectionMatch(section=section_name)
                        hit.sections.append(current)
                    current.lines.append((line, True))
                elif current is not None:
                    if line.strip() and not line.startswith("#"):
                        current.lines.append((line, False))
                    else:
                        current = None

            hits.append(hit)
        return hits
