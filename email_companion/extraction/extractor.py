"""
Text extraction from local files.

Each supported extension maps to a reader. Readers run in a worker thread
so OCR and document parsing never block the event loop, and every failure
is reported through `ExtractionResult` rather than raised.
"""
import asyncio
import base64
from pathlib import Path
from typing import Optional, Tuple, Union

import pandas as pd
import pytesseract
from docx import Document
from pdf2image import convert_from_path
from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader

from ..config import ExtractionConfig
from ..logger import get_logger
from ..models import ErrorKind, ExtractionFormat, ExtractionResult

logger = get_logger(__name__)

TRUNCATION_MARKER = '\n... [truncated]'

TEXT_EXTENSIONS = {
    '.txt', '.md', '.json', '.xml', '.html', '.htm', '.css', '.log',
    '.js', '.ts', '.py', '.java', '.c', '.cpp', '.h', '.yaml', '.yml',
}
CSV_EXTENSIONS = {'.csv'}
PDF_EXTENSIONS = {'.pdf'}
WORD_EXTENSIONS = {'.docx', '.doc'}
EXCEL_EXTENSIONS = {'.xlsx', '.xls'}
IMAGE_MIME_TYPES = {
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
    '.bmp': 'image/bmp',
}

SCANNED_PDF_WARNING = (
    "This PDF appears to be scanned/image-based with little extractable text. "
    "For best results: 1) Use a PDF with selectable text, or 2) Export pages as "
    "images and upload those for OCR analysis."
)


class ExtractionError(Exception):
    """Raised by readers when a file cannot be turned into text."""
    pass


def truncate_text(text: str, max_chars: Optional[int]) -> Tuple[str, bool]:
    """Cap text at `max_chars`, appending the truncation marker when cut."""
    if max_chars is None or len(text) <= max_chars:
        return text, False
    return text[:max_chars] + TRUNCATION_MARKER, True


def is_supported(path: Union[str, Path]) -> bool:
    ext = Path(path).suffix.lower()
    return ext in (TEXT_EXTENSIONS | CSV_EXTENSIONS | PDF_EXTENSIONS | WORD_EXTENSIONS
                   | EXCEL_EXTENSIONS | set(IMAGE_MIME_TYPES))


class ContentExtractor:
    """Converts a single file into a normalized text payload."""

    def __init__(self, settings: Optional[ExtractionConfig] = None):
        self.settings = settings or ExtractionConfig()

    async def extract(self, file_path: Union[str, Path], max_chars: Optional[int] = None) -> ExtractionResult:
        """Extract text from `file_path` without blocking the event loop.

        Args:
            file_path: Local file to read
            max_chars: Optional ceiling; longer text is truncated with a marker

        Returns:
            ExtractionResult, with success=False and a reason on any failure
        """
        return await asyncio.to_thread(self.extract_sync, file_path, max_chars)

    def extract_sync(self, file_path: Union[str, Path], max_chars: Optional[int] = None) -> ExtractionResult:
        path = Path(file_path)
        ext = path.suffix.lower()
        file_name = path.name
        logger.info(f"Extracting text from {file_name} ({ext or 'no extension'})")

        if not is_supported(path):
            return ExtractionResult(
                success=False,
                file_name=file_name,
                error=f"Unsupported file type: {ext or file_name}",
                error_kind=ErrorKind.UNSUPPORTED_FORMAT
            )

        try:
            if not path.is_file():
                raise ExtractionError(f"File not found: {file_name}")
            if path.stat().st_size == 0:
                raise ExtractionError("File is empty")

            if ext in TEXT_EXTENSIONS:
                result = self._extract_text(path, ExtractionFormat.TEXT)
            elif ext in CSV_EXTENSIONS:
                result = self._extract_text(path, ExtractionFormat.CSV)
            elif ext in PDF_EXTENSIONS:
                result = self._extract_pdf(path)
            elif ext in WORD_EXTENSIONS:
                result = self._extract_word(path)
            elif ext in EXCEL_EXTENSIONS:
                result = self._extract_excel(path)
            else:
                result = self._extract_image(path)

        except ExtractionError as e:
            logger.warning(f"Could not extract {file_name}: {e}")
            return ExtractionResult(
                success=False,
                file_name=file_name,
                error=str(e),
                error_kind=ErrorKind.EXTRACTION_FAILED
            )
        except Exception as e:
            logger.error(f"Error extracting text from {file_name}: {e}")
            return ExtractionResult(
                success=False,
                file_name=file_name,
                error=f"Failed to read {file_name}: {e}",
                error_kind=ErrorKind.EXTRACTION_FAILED
            )

        result.text, result.truncated = truncate_text(result.text, max_chars)
        logger.info(f"Extracted {len(result.text)} chars from {file_name} as {result.format}")
        return result

    def _extract_text(self, path: Path, fmt: ExtractionFormat) -> ExtractionResult:
        try:
            content = path.read_text(encoding='utf-8')
        except UnicodeDecodeError as e:
            raise ExtractionError(f"File is not valid UTF-8 text: {e}") from e

        if not content.strip():
            raise ExtractionError("File contains no text")
        return ExtractionResult(success=True, file_name=path.name, text=content, format=fmt)

    def _read_pdf(self, path: Path) -> Tuple[str, int]:
        """Return the embedded text and page count of a PDF."""
        try:
            reader = PdfReader(str(path))
            if reader.is_encrypted:
                reader.decrypt('')
            parts = []
            for i, page in enumerate(reader.pages):
                try:
                    parts.append(page.extract_text() or '')
                except Exception as e:
                    logger.warning(f"Failed to extract text from page {i + 1} of {path.name}: {e}")
            return '\n'.join(part for part in parts if part), len(reader.pages)
        except Exception as e:
            raise ExtractionError(f"Could not parse PDF: {e}") from e

    def _ocr_pdf(self, path: Path) -> str:
        """Rasterize a PDF and OCR each page. Returns '' when OCR is unavailable."""
        try:
            images = convert_from_path(str(path))
        except Exception as e:
            logger.warning(f"Unable to rasterize PDF {path.name} for OCR: {e}")
            return ''

        pages = []
        for image in images:
            text = self._run_ocr(image)
            if text:
                pages.append(text)
        return '\n'.join(pages)

    def _extract_pdf(self, path: Path) -> ExtractionResult:
        text, page_count = self._read_pdf(path)
        avg_chars_per_page = len(text) / (page_count or 1)
        likely_scanned = avg_chars_per_page < self.settings.scanned_chars_per_page

        if likely_scanned and len(text.strip()) < self.settings.scanned_min_chars:
            logger.info(f"{path.name} looks scanned ({len(text)} chars over {page_count} pages)")
            result = ExtractionResult(
                success=True,
                file_name=path.name,
                text=text,
                format=ExtractionFormat.PDF,
                page_count=page_count,
                is_scanned=True
            )

            ocr_text = self._ocr_pdf(path) if self.settings.ocr_scanned_pdfs else ''
            if len(ocr_text) > self.settings.ocr_min_chars:
                result.text = ocr_text
                result.has_ocr_text = True
            else:
                result.warning = SCANNED_PDF_WARNING
            return result

        return ExtractionResult(
            success=True,
            file_name=path.name,
            text=text,
            format=ExtractionFormat.PDF,
            page_count=page_count
        )

    def _extract_word(self, path: Path) -> ExtractionResult:
        try:
            document = Document(str(path))
        except Exception as e:
            raise ExtractionError(f"Unsupported or corrupt Word document: {e}") from e

        parts = [p.text for p in document.paragraphs if p.text and p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text and cell.text.strip()]
                if cells:
                    parts.append('\t'.join(cells))

        text = '\n'.join(parts)
        if not text.strip():
            raise ExtractionError("Word document contains no text")
        return ExtractionResult(success=True, file_name=path.name, text=text, format=ExtractionFormat.WORD)

    def _extract_excel(self, path: Path) -> ExtractionResult:
        engine = 'openpyxl' if path.suffix.lower() == '.xlsx' else 'xlrd'
        try:
            with pd.ExcelFile(str(path), engine=engine) as workbook:
                blocks = []
                for sheet_name in workbook.sheet_names:
                    frame = pd.read_excel(workbook, sheet_name=sheet_name, dtype=str, header=None)
                    csv_data = frame.to_csv(index=False, header=False).strip()
                    blocks.append(f"--- Sheet: {sheet_name} ---\n{csv_data}")
        except Exception as e:
            raise ExtractionError(f"Could not read spreadsheet: {e}") from e

        text = '\n'.join(blocks).strip()
        if not text:
            raise ExtractionError("Spreadsheet contains no sheets")
        logger.info(f"Spreadsheet {path.name} processed ({len(blocks)} sheets)")
        return ExtractionResult(success=True, file_name=path.name, text=text, format=ExtractionFormat.EXCEL)

    def _run_ocr(self, image) -> str:
        try:
            return (pytesseract.image_to_string(image, lang=self.settings.ocr_language) or '').strip()
        except Exception as e:
            logger.warning(f"OCR failed: {e}")
            return ''

    def _extract_image(self, path: Path) -> ExtractionResult:
        try:
            with Image.open(path) as image:
                image.load()
                ocr_text = self._run_ocr(image)
        except (UnidentifiedImageError, OSError) as e:
            raise ExtractionError(f"Unreadable or corrupt image: {e}") from e

        if len(ocr_text) > self.settings.ocr_min_chars:
            return ExtractionResult(
                success=True,
                file_name=path.name,
                text=ocr_text,
                format=ExtractionFormat.IMAGE,
                has_ocr_text=True
            )

        # No usable text, hand the raw image to a vision-capable provider
        return ExtractionResult(
            success=True,
            file_name=path.name,
            format=ExtractionFormat.IMAGE,
            image_base64=base64.b64encode(path.read_bytes()).decode('ascii'),
            mime_type=IMAGE_MIME_TYPES[path.suffix.lower()]
        )
