"""Minimal PDF writer for monospaced, line-oriented text.

The layout is fixed: US Letter pages, one Helvetica font resource, and one text
block per page. Objects are numbered font, content streams, pages, page tree,
catalog; the cross-reference table records the exact byte offset of each
object in the final stream.
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from flatten_github.exceptions import EncoderInvariantError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    PdfProgressCallback = Callable[[int, int], None]

PAGE_WIDTH = 612
PAGE_HEIGHT = 792
LEFT_MARGIN = 40
TOP_MARGIN = 48
BOTTOM_MARGIN = 48
FONT_SIZE = 10
LINE_HEIGHT = 12

LINES_PER_PAGE = max(1, (PAGE_HEIGHT - TOP_MARGIN - BOTTOM_MARGIN) // LINE_HEIGHT)

PDF_HEADER = b"%PDF-1.4\n"

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


class PdfRenderResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: bytes
    page_count: int


def escape_pdf_text(line: str) -> str:
    """Escape one line for use inside a PDF literal string.

    Args:
        line (str): a single line of text (no newline)

    Returns:
        str: the line with backslashes and parentheses escaped, CR and TAB turned
            into spaces and the remaining control characters removed
    """
    escaped = line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
    escaped = escaped.replace("\r", " ").replace("\t", " ")
    return _CONTROL_CHARS.sub("", escaped)


def split_lines(text: str) -> list[str]:
    """Split text into lines after normalising CRLF line endings."""
    return text.replace("\r\n", "\n").split("\n")


def split_into_pages(lines: Sequence[str]) -> list[list[str]]:
    """Group lines into pages of `LINES_PER_PAGE`; an empty input yields one page with one empty line."""
    pages = [list(lines[i : i + LINES_PER_PAGE]) for i in range(0, len(lines), LINES_PER_PAGE)]
    if not pages:
        pages.append([""])
    return pages


def estimate_pdf_page_count(text: str) -> int:
    return len(split_into_pages(split_lines(text)))


def build_content_stream(lines: Sequence[str]) -> str:
    start_y = PAGE_HEIGHT - TOP_MARGIN
    header = f"BT\n/F1 {FONT_SIZE} Tf\n1 0 0 1 {LEFT_MARGIN} {start_y} Tm\n{LINE_HEIGHT} TL"
    body = "\n".join(f"({escape_pdf_text(line)}) Tj\nT*" for line in lines)
    return f"{header}\n{body}\nET"


class PdfDocument:
    """Object table of a PDF under construction.

    Objects are reserved first (to fix their numbers) and filled later.
    Serializing with an object still unset is a programming error.
    """

    def __init__(self) -> None:
        self.objects: list[bytes | None] = []

    def create_object(self, content: str | bytes | None = None) -> int:
        """Reserve the next object number, optionally filling it right away."""
        self.objects.append(None)
        number = len(self.objects)
        if content is not None:
            self.set_object(number, content)
        return number

    def set_object(self, number: int, content: str | bytes) -> None:
        self.objects[number - 1] = content.encode("utf-8") if isinstance(content, str) else content

    def serialize(self, root: int) -> bytes:
        """Emit the document bytes.

        Args:
            root (int): object number of the catalog

        Raises:
            EncoderInvariantError: if any reserved object was never filled

        Returns:
            bytes: header, objects, cross-reference table and trailer
        """
        out = bytearray(PDF_HEADER)
        offsets: list[int] = []
        for index, content in enumerate(self.objects):
            if content is None:
                raise EncoderInvariantError(index=index)
            offsets.append(len(out))
            out += f"{index + 1} 0 obj\n".encode("ascii")
            out += content
            out += b"\nendobj\n"

        xref_offset = len(out)
        size = len(self.objects) + 1
        out += f"xref\n0 {size}\n0000000000 65535 f \n".encode("ascii")
        for offset in offsets:
            out += f"{offset:010d} 00000 n \n".encode("ascii")
        out += f"trailer\n<< /Size {size} /Root {root} 0 R >>\nstartxref\n{xref_offset}\n%%EOF".encode("ascii")
        return bytes(out)


async def create_pdf(pages: Sequence[Sequence[str]], on_progress: PdfProgressCallback | None = None) -> bytes:
    """Build the PDF for already paginated lines, reporting one event per page.

    When a progress callback is registered the event loop gets control back after
    every page so that a concurrent consumer can redraw.
    """
    doc = PdfDocument()
    font = doc.create_object("<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")
    contents = [doc.create_object() for _ in pages]
    page_objects = [doc.create_object() for _ in pages]
    pages_root = doc.create_object()
    catalog = doc.create_object()

    total = len(pages)
    for idx, lines in enumerate(pages):
        stream = build_content_stream(lines).encode("utf-8")
        doc.set_object(contents[idx], b"<< /Length %d >>\nstream\n%b\nendstream" % (len(stream), stream))
        if on_progress is not None:
            on_progress(idx + 1, total)
            await asyncio.sleep(0)

    kids = " ".join(f"{number} 0 R" for number in page_objects)
    doc.set_object(pages_root, f"<< /Type /Pages /Count {total} /Kids [{kids}] >>")
    for page_number, content_number in zip(page_objects, contents, strict=True):
        doc.set_object(
            page_number,
            f"<< /Type /Page /Parent {pages_root} 0 R /Resources << /Font << /F1 {font} 0 R >> >> "
            f"/MediaBox [0 0 {PAGE_WIDTH} {PAGE_HEIGHT}] /Contents {content_number} 0 R >>",
        )
    doc.set_object(catalog, f"<< /Type /Catalog /Pages {pages_root} 0 R >>")
    return doc.serialize(root=catalog)


async def render_pdf_from_text(text: str, on_progress: PdfProgressCallback | None = None) -> PdfRenderResult:
    """Render text into a paginated PDF.

    Args:
        text (str): the text to render; CRLF and LF are both line breaks
        on_progress (PdfProgressCallback | None): called with (pages_done, total_pages)

    Returns:
        PdfRenderResult: the PDF bytes and the number of pages
    """
    pages = split_into_pages(split_lines(text))
    data = await create_pdf(pages, on_progress)
    return PdfRenderResult(data=data, page_count=len(pages))
