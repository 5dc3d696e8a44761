import logging

from django.core.files.storage import default_storage
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = (".txt", ".md", ".csv")


def extract_pdf_text(fh):
    reader = PdfReader(fh)
    pages = []
    for page in reader.pages:
        pages.append(page.extract_text() or "")
    return "\n".join(pages)


def extract_text(storage_path):
    """Plain text of a stored PDF/text file; unsupported types give ""."""
    lower = storage_path.lower()
    with default_storage.open(storage_path, "rb") as fh:
        if lower.endswith(".pdf"):
            try:
                return extract_pdf_text(fh)
            except PdfReadError as e:
                logger.warning("unreadable pdf %s: %s", storage_path, e)
                return ""
        if lower.endswith(TEXT_EXTENSIONS):
            return fh.read().decode("utf-8", errors="ignore")
    logger.info("skipping unsupported file %s", storage_path)
    return ""


def source_text(source):
    parts = [extract_text(path) for path in source.storage_paths or []]
    text = "\n\n".join(p for p in parts if p.strip())
    return text or source.summary or ""
