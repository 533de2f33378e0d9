"""Reading study material from files of various formats."""
import json
import re
from pathlib import Path

import yaml

from quiz_master.errors import ValidationError


def _read_pdf(path: Path) -> str:
    from PyPDF2 import PdfReader
    reader = PdfReader(str(path))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _read_docx(path: Path) -> str:
    from docx import Document
    doc = Document(str(path))
    return "\n".join(p.text for p in doc.paragraphs)


def _read_html(path: Path) -> str:
    from bs4 import BeautifulSoup
    return BeautifulSoup(path.read_text(encoding="utf-8"), "html.parser").get_text("\n")


def _read_json(path: Path) -> str:
    data = json.loads(path.read_text(encoding="utf-8"))
    return data if isinstance(data, str) else json.dumps(data, indent=2, ensure_ascii=False)


def _read_yaml(path: Path) -> str:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return data if isinstance(data, str) else yaml.safe_dump(data, allow_unicode=True)


READERS = {
    ".pdf": _read_pdf,
    ".docx": _read_docx,
    ".html": _read_html,
    ".htm": _read_html,
    ".json": _read_json,
    ".yaml": _read_yaml,
    ".yml": _read_yaml,
}


def normalize_text(text: str) -> str:
    """Collapse runs of blank lines and trailing spaces left by extractors."""
    lines = [line.rstrip() for line in text.splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def read_study_text(file_path: str) -> str:
    """Extract plain study text from a file. Unknown suffixes are read as text."""
    path = Path(file_path)
    if not path.is_file():
        raise ValidationError(f"File not found: {file_path}")
    reader = READERS.get(path.suffix.lower())
    try:
        text = reader(path) if reader else path.read_text(encoding="utf-8")
    except (UnicodeDecodeError, ValueError, yaml.YAMLError) as e:
        raise ValidationError(f"Could not read {path.name}: {e}") from e
    return normalize_text(text)
