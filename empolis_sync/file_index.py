"""
File index: titles and breadcrumbs extracted from local HTML help files.

The help files are generated by WebWorks ePublisher. The page title comes
from <title>, falling back to the first-level heading (class Heading_2).
Breadcrumbs come from the element with class WebWorks_Breadcrumbs, whose
text looks like "Home > Setup > Network".

The index is persisted as a JSON array of
{"filename": ..., "title": ..., "breadcrumbs": [...]} objects.
"""

import json
import logging
from pathlib import Path
from typing import Iterable, Optional

from bs4 import BeautifulSoup

from .types import FileRecord

logger = logging.getLogger(__name__)

HTML_SUFFIXES = (".html", ".htm")
INDEX_DIRNAME = "index"
INDEX_FILENAME = "file_index.json"
UNTITLED = "Untitled"

BREADCRUMB_CLASS = "WebWorks_Breadcrumbs"
HEADING_CLASS = "Heading_2"
BREADCRUMB_SEPARATOR = ">"


def list_html_files(directory: Path) -> list[str]:
    """
    Names of the .html/.htm files in a directory, sorted.

    Raises:
        FileNotFoundError: If the directory is missing or has no HTML files
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Help directory not found: {directory}")
    files = sorted(
        entry.name for entry in directory.iterdir()
        if entry.is_file() and entry.suffix.lower() in HTML_SUFFIXES
    )
    if not files:
        raise FileNotFoundError(f"No HTML files found in {directory}")
    return files


def _element_text(soup: BeautifulSoup, selector: str) -> str:
    element = soup.select_one(selector)
    if element is None:
        return ""
    return " ".join(element.get_text().split())


def parse_file_record(filename: str, html_content: str) -> FileRecord:
    """Extract title and breadcrumbs from HTML content."""
    soup = BeautifulSoup(html_content, "html.parser")

    title = _element_text(soup, "title")
    if not title:
        title = _element_text(soup, f".{HEADING_CLASS}")
    if not title:
        title = UNTITLED

    crumbs_text = _element_text(soup, f".{BREADCRUMB_CLASS}")
    crumbs = [c.strip() for c in crumbs_text.split(BREADCRUMB_SEPARATOR)]
    breadcrumbs = tuple(c for c in crumbs if c) or None

    return FileRecord(filename=filename, title=title, breadcrumbs=breadcrumbs)


def extract_file_record(path: Path) -> FileRecord:
    """
    Read an HTML file and extract its FileRecord.

    Raises:
        IOError: If the file can't be read
    """
    path = Path(path)
    try:
        html_content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise IOError(f"Failed to read HTML file {path}: {e}") from e
    record = parse_file_record(path.name, html_content)
    logger.debug("Title %r and breadcrumbs extracted from %s", record.title, path.name)
    return record


def index_path(directory: Path) -> Path:
    """Location of the index file for a help directory."""
    return Path(directory) / INDEX_DIRNAME / INDEX_FILENAME


def write_index(path: Path, records: Iterable[FileRecord]) -> None:
    """Write records as a JSON array, replacing any existing index."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = [r.to_dict() for r in records]
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


def read_index(path: Path) -> list[FileRecord]:
    """
    Read an index file.

    Raises:
        FileNotFoundError: If the index doesn't exist
        ValueError: If the index is not a JSON array of records
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid index file {path}: {e}") from e
    if not isinstance(data, list):
        raise ValueError(f"Index file {path} must contain a JSON array")
    records = [FileRecord.from_dict(entry) for entry in data]
    logger.info("Read %d records from %s", len(records), path)
    return records


def create_file_index(directory: Path, files: Optional[Iterable[str]] = None) -> Path:
    """
    Build the index for a help directory.

    Args:
        directory: Directory holding the HTML files
        files: File names to index; all HTML files in the directory if None

    Returns:
        Path of the written index file
    """
    directory = Path(directory)
    if files is None:
        files = list_html_files(directory)

    records = [extract_file_record(directory / name) for name in files]
    path = index_path(directory)
    write_index(path, records)
    logger.info("Indexed %d files from %s into %s", len(records), directory, path)
    return path
