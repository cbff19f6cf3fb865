#!/usr/bin/env python3
"""
Article Publishing CLI - turn a local markdown article into DOCX, PPTX or markdown

Runs the same pipeline as the API:
- Mermaid diagrams are validated, rendered, uploaded and cached
- Diagrams that cannot be rendered stay as source (DOCX/markdown) or are omitted (PPTX)
- Tables, code blocks, lists and inline styling are carried into the artifact

Usage:
    python publish_article.py article.md
    python publish_article.py article.md --format pptx --theme modern
    python publish_article.py article.md --format md --output article.rendered.md

Examples:
    # DOCX next to the input (article.docx)
    python publish_article.py article.md

    # Slide deck with a title slide
    python publish_article.py talk.md --format pptx --title "System Design" --theme professional

    # Keep the diagram cache between runs (SQLite record store from settings)
    python publish_article.py article.md --persist
"""

import argparse
import asyncio
import re
import sys
from pathlib import Path
from typing import Optional

from config.logging_config import get_logger
from config.settings import get_settings
from core.diagrams.errors import PublishingError
from core.export.formats import parse_format
from core.pipeline import PipelineOutput, build_pipeline
from core.storage.record_store import DocumentRecord, InMemoryRecordStore, SQLiteRecordStore

logger = get_logger(__name__)


def get_default_output(input_path: str, extension: str) -> str:
    """Generate default output filename."""
    input_file = Path(input_path)
    if extension == "md":
        return str(input_file.with_name(f"{input_file.stem}.published.md"))
    return str(input_file.with_suffix(f".{extension}"))


def document_id_for(input_path: str) -> str:
    """Stable record id derived from the file name."""
    stem = Path(input_path).stem.lower()
    return re.sub(r'[^a-z0-9]+', '-', stem).strip('-') or "article"


async def publish(
    input_path: str,
    output_format: str = "docx",
    output_path: Optional[str] = None,
    theme: Optional[str] = None,
    title: Optional[str] = None,
    persist: bool = False,
) -> PipelineOutput:
    """
    Publish a markdown file.

    Args:
        input_path: Markdown file
        output_format: docx | pptx | md
        output_path: Destination (default derived from the input)
        theme: Deck theme for pptx
        title: Document/deck title (default: file stem)
        persist: Use the SQLite record store so cached diagrams survive runs
    """
    source = Path(input_path)
    if not source.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")

    fmt = parse_format(output_format)
    content = source.read_text(encoding="utf-8")
    document_id = document_id_for(input_path)

    settings = get_settings()
    settings.ensure_directories()

    if persist:
        record_store = SQLiteRecordStore(settings.database_path)
        existing = await record_store.get_document(document_id)
        record = DocumentRecord(
            id=document_id,
            title=title or source.stem,
            content=content,
            diagram_images=existing.diagram_images if existing else {},
        )
        await record_store.save_document(record)
    else:
        record_store = InMemoryRecordStore()
        record_store.put(DocumentRecord(id=document_id, title=title or source.stem, content=content))

    pipeline = build_pipeline(settings, record_store=record_store)
    output = await pipeline.process_document(document_id, fmt, theme=theme, title=title or source.stem)

    destination = Path(output_path or get_default_output(input_path, fmt.extension))
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(output.content)

    logger.info(f"Wrote {destination} ({len(output.content)} bytes)")
    return output


def main():
    parser = argparse.ArgumentParser(
        description="Publish a markdown article as DOCX, PPTX or markdown with rendered diagrams",
        epilog="""
Examples:
  %(prog)s article.md
  %(prog)s talk.md --format pptx --theme modern --title "My Talk"
  %(prog)s article.md --format md --output rendered.md
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        'input',
        help='Input markdown file'
    )

    parser.add_argument(
        '-f', '--format',
        choices=['docx', 'pptx', 'md'],
        default='docx',
        help='Output format (default: docx)'
    )

    parser.add_argument(
        '-o', '--output',
        help='Output file (default: <input>.<format>)'
    )

    parser.add_argument(
        '--theme',
        choices=['classic', 'academic', 'modern', 'elegant', 'professional'],
        help='Deck theme for pptx (default: from settings)'
    )

    parser.add_argument(
        '--title',
        help='Title for the document or deck (default: input file name)'
    )

    parser.add_argument(
        '--persist',
        action='store_true',
        help='Keep the diagram cache in the SQLite record store between runs'
    )

    args = parser.parse_args()

    try:
        output = asyncio.run(publish(
            input_path=args.input,
            output_format=args.format,
            output_path=args.output,
            theme=args.theme,
            title=args.title,
            persist=args.persist,
        ))
    except FileNotFoundError as e:
        print(f"\n❌ Error: {e}", file=sys.stderr)
        return 1
    except PublishingError as e:
        print(f"\n❌ Error: {e}", file=sys.stderr)
        return 1

    report = output.report
    print(f"\n✅ {output.filename}: {len(output.content)} bytes")
    print(f"Diagrams: {report.resolved}/{report.total} resolved, "
          f"{report.cached} from cache, {report.degraded} shown as source")
    return 0


if __name__ == '__main__':
    sys.exit(main())
