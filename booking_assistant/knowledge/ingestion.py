"""Build knowledge documents from a directory of source files.

Supported sources are ``.md``, ``.txt`` and ``.json`` files directly under
the knowledge directory (the persisted snapshot file is always skipped).

JSON sources may carry their own ``title``, ``content`` and ``metadata``
fields, which override the defaults derived from the filename.  A JSON
file that does not parse is still ingested, as raw text, and reported as
an :class:`IngestionWarning`.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from booking_assistant.config import SNAPSHOT_FILENAME
from booking_assistant.knowledge.chunker import chunk_content
from booking_assistant.knowledge.models import (
    DocumentMetadata,
    IngestionReport,
    IngestionWarning,
    KnowledgeDocument,
)

logger = logging.getLogger(__name__)

SOURCE_SUFFIXES = (".md", ".txt", ".json")

# Documents longer than this are replaced by their chunks
CHUNK_THRESHOLD = 10_000


def is_source_file(path: Path, snapshot_name: str = SNAPSHOT_FILENAME) -> bool:
    """Return ``True`` if *path* should be ingested into the knowledge base."""
    return (
        path.is_file()
        and path.suffix.lower() in SOURCE_SUFFIXES
        and path.name != snapshot_name
    )


def list_source_files(directory: Path, snapshot_name: str = SNAPSHOT_FILENAME) -> list[Path]:
    """Source files in *directory*, sorted by name so reloads are deterministic."""
    return sorted(p for p in directory.iterdir() if is_source_file(p, snapshot_name))


def _document_from_json(
    path: Path, raw: str, document: KnowledgeDocument,
) -> tuple[KnowledgeDocument, IngestionWarning | None]:
    """Apply the ``title`` / ``content`` / ``metadata`` fields of a JSON source."""
    try:
        payload: Any = json.loads(raw)
    except json.JSONDecodeError as exc:
        return document, IngestionWarning(
            source=path.name, message=f"Invalid JSON, ingested as raw text: {exc}",
        )

    if not isinstance(payload, dict):
        return document, IngestionWarning(
            source=path.name,
            message="JSON root is not an object, ingested as raw text",
        )

    content = payload.get("content")
    title = payload.get("title")
    if isinstance(content, str) and content:
        document.content = content
    if isinstance(title, str) and title:
        document.title = title

    metadata = payload.get("metadata")
    if metadata:
        try:
            document.metadata = DocumentMetadata.model_validate(metadata)
        except ValidationError as exc:
            return document, IngestionWarning(
                source=path.name, message=f"Ignored invalid metadata: {exc}",
            )
    return document, None


def split_into_chunks(document: KnowledgeDocument) -> list[KnowledgeDocument]:
    """Replace an oversized document by one document per chunk."""
    base_metadata = document.metadata.model_dump(by_alias=True, exclude_none=True)
    base_metadata.pop("embedding", None)

    chunks: list[KnowledgeDocument] = []
    for index, text in enumerate(chunk_content(document.content)):
        metadata = DocumentMetadata.model_validate(
            {
                **base_metadata,
                "parentId": document.id,
                "chunkIndex": index,
                "parentTitle": document.title,
            }
        )
        chunks.append(
            KnowledgeDocument(
                id=f"{document.id}-chunk-{index}",
                title=f"{document.title} - Part {index + 1}",
                content=text,
                metadata=metadata,
            )
        )
    return chunks


def load_document(path: Path) -> tuple[list[KnowledgeDocument], IngestionWarning | None]:
    """Read one source file into one or more knowledge documents."""
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return [], IngestionWarning(source=path.name, message=f"Unreadable file skipped: {exc}")

    document = KnowledgeDocument(id=path.name, title=path.stem, content=raw)
    warning = None
    if path.suffix.lower() == ".json":
        document, warning = _document_from_json(path, raw, document)

    if len(document.content) > CHUNK_THRESHOLD:
        return split_into_chunks(document), warning
    return [document], warning


def load_documents(directory: Path, snapshot_name: str = SNAPSHOT_FILENAME) -> IngestionReport:
    """Ingest every source file in *directory*.

    Never raises for a bad file; problems are collected in the report's
    ``warnings``.  Raises ``OSError`` only when the directory itself cannot
    be listed.
    """
    report = IngestionReport()
    for path in list_source_files(directory, snapshot_name):
        documents, warning = load_document(path)
        if warning is not None:
            logger.warning("Ingestion warning for %s: %s", warning.source, warning.message)
            report.warnings.append(warning)
        report.documents.extend(documents)

    logger.info(
        "Ingested %d documents from %s (%d warnings)",
        len(report.documents), directory, len(report.warnings),
    )
    return report


# ── Sample knowledge base ───────────────────────────────────────────

SAMPLE_DOCUMENTS: list[dict[str, Any]] = [
    {
        "title": "Appointment Policies",
        "content": (
            "# Appointment Policies\n\n"
            "## Cancellation Policy\n"
            "Appointments must be cancelled at least 24 hours in advance "
            "to avoid a cancellation fee.\n\n"
            "## Late Arrival Policy\n"
            "If you arrive more than 15 minutes late, we may need to "
            "reschedule your appointment.\n\n"
            "## Rescheduling\n"
            "Appointments can be rescheduled up to 2 times without penalty."
        ),
        "metadata": {"category": "policies", "importance": "high"},
    },
    {
        "title": "Virtual Appointment Guide",
        "content": (
            "# Preparing for Your Virtual Appointment\n\n"
            "## Technical Requirements\n"
            "- A device with a camera and microphone (smartphone, tablet, or computer)\n"
            "- Stable internet connection\n"
            "- Our secure meeting application (download link provided in "
            "confirmation email)\n\n"
            "## Before Your Appointment\n"
            "1. Test your device and internet connection\n"
            "2. Find a quiet, private space\n"
            "3. Have any relevant documents ready\n"
            "4. Log in 5 minutes early to test your connection"
        ),
        "metadata": {"category": "guides", "importance": "medium"},
    },
    {
        "title": "Frequently Asked Questions",
        "content": (
            "# Frequently Asked Questions\n\n"
            "## How do I reschedule my appointment?\n"
            "You can reschedule your appointment by calling our office or "
            "using the online portal at least 24 hours before your "
            "scheduled time.\n\n"
            "## What happens if I miss my appointment?\n"
            "Missed appointments without prior notice may incur a fee and "
            "will require rescheduling.\n\n"
            "## Can I request a specific consultant?\n"
            "Yes, you can request a specific consultant when booking your "
            "appointment, subject to their availability."
        ),
        "metadata": {"category": "faq", "importance": "high"},
    },
]


def seed_sample_documents(directory: Path) -> bool:
    """Create *directory* with the sample documents if it does not exist.

    Returns ``True`` when the directory was created.
    """
    if directory.exists():
        return False

    logger.info("Knowledge base directory does not exist. Creating %s", directory)
    directory.mkdir(parents=True)
    for doc in SAMPLE_DOCUMENTS:
        filename = "-".join(doc["title"].lower().split()) + ".json"
        (directory / filename).write_text(json.dumps(doc, indent=2), encoding="utf-8")
    return True
