import base64
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from docx import Document
from openpyxl import Workbook
from PIL import Image
from pypdf import PdfWriter

from email_companion.config import ExtractionConfig
from email_companion.extraction.extractor import (SCANNED_PDF_WARNING, TRUNCATION_MARKER, ContentExtractor,
                                                  is_supported, truncate_text)
from email_companion.models import ErrorKind, ExtractionFormat


class TestContentExtractor(unittest.TestCase):
    """Test cases for ContentExtractor"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.temp_dir, ignore_errors=True)
        self.extractor = ContentExtractor(ExtractionConfig())

    def _write(self, name, content):
        path = self.temp_dir / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding='utf-8')
        return path

    def test_plain_text(self):
        path = self._write('notes.txt', 'Quarterly numbers attached.\nSee below.')

        result = self.extractor.extract_sync(path)

        self.assertTrue(result.success)
        self.assertEqual(result.format, ExtractionFormat.TEXT)
        self.assertEqual(result.text, 'Quarterly numbers attached.\nSee below.')
        self.assertFalse(result.truncated)

    def test_csv_is_read_verbatim(self):
        path = self._write('data.csv', 'name,amount\nalpha,10\n')

        result = self.extractor.extract_sync(path)

        self.assertTrue(result.success)
        self.assertEqual(result.format, ExtractionFormat.CSV)
        self.assertEqual(result.text, 'name,amount\nalpha,10\n')

    def test_truncation_length_is_ceiling_plus_marker(self):
        path = self._write('long.txt', 'x' * 12000)

        result = self.extractor.extract_sync(path, max_chars=5000)

        self.assertTrue(result.truncated)
        self.assertEqual(len(result.text), 5000 + len(TRUNCATION_MARKER))
        self.assertTrue(result.text.endswith(TRUNCATION_MARKER))

    def test_text_at_ceiling_is_not_truncated(self):
        text, truncated = truncate_text('a' * 100, 100)
        self.assertEqual(text, 'a' * 100)
        self.assertFalse(truncated)

    def test_unsupported_extension(self):
        path = self._write('archive.zip', b'PK\x03\x04')

        result = self.extractor.extract_sync(path)

        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.UNSUPPORTED_FORMAT)
        self.assertFalse(is_supported(path))

    def test_empty_file_fails_without_raising(self):
        path = self._write('empty.txt', '')

        result = self.extractor.extract_sync(path)

        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.EXTRACTION_FAILED)
        self.assertIn('empty', result.error.lower())

    def test_missing_file(self):
        result = self.extractor.extract_sync(self.temp_dir / 'gone.pdf')

        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.EXTRACTION_FAILED)

    def test_corrupt_pdf(self):
        path = self._write('broken.pdf', b'this is not a pdf at all')

        result = self.extractor.extract_sync(path)

        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.EXTRACTION_FAILED)

    def test_corrupt_docx(self):
        path = self._write('broken.docx', b'not a zip file')

        result = self.extractor.extract_sync(path)

        self.assertFalse(result.success)
        self.assertIn('Word document', result.error)

    def test_blank_pdf_is_flagged_scanned(self):
        writer = PdfWriter()
        writer.add_blank_page(width=612, height=792)
        writer.add_blank_page(width=612, height=792)
        path = self.temp_dir / 'scan.pdf'
        with open(path, 'wb') as f:
            writer.write(f)

        with patch.object(ContentExtractor, '_ocr_pdf', return_value=''):
            result = self.extractor.extract_sync(path)

        self.assertTrue(result.success)
        self.assertTrue(result.is_scanned)
        self.assertEqual(result.page_count, 2)
        self.assertEqual(result.warning, SCANNED_PDF_WARNING)

    def test_scanned_pdf_with_little_text(self):
        # Thresholds are heuristics; 40 chars over 2 pages is well under both
        path = self._write('scan.pdf', b'%PDF-1.4 placeholder')

        with patch.object(ContentExtractor, '_read_pdf', return_value=('x' * 40, 2)), \
                patch.object(ContentExtractor, '_ocr_pdf', return_value=''):
            result = self.extractor.extract_sync(path)

        self.assertTrue(result.success)
        self.assertTrue(result.is_scanned)
        self.assertIsNotNone(result.warning)
        self.assertEqual(result.text, 'x' * 40)

    def test_scanned_pdf_rescued_by_ocr(self):
        path = self._write('scan.pdf', b'%PDF-1.4 placeholder')
        ocr_text = 'Invoice 4471 due on the first of March, total 1,200 EUR'

        with patch.object(ContentExtractor, '_read_pdf', return_value=('', 1)), \
                patch.object(ContentExtractor, '_ocr_pdf', return_value=ocr_text):
            result = self.extractor.extract_sync(path)

        self.assertTrue(result.is_scanned)
        self.assertTrue(result.has_ocr_text)
        self.assertIsNone(result.warning)
        self.assertEqual(result.text, ocr_text)

    def test_text_pdf_is_not_scanned(self):
        path = self._write('report.pdf', b'%PDF-1.4 placeholder')

        with patch.object(ContentExtractor, '_read_pdf', return_value=('word ' * 200, 2)):
            result = self.extractor.extract_sync(path)

        self.assertTrue(result.success)
        self.assertFalse(result.is_scanned)
        self.assertIsNone(result.warning)

    def test_docx(self):
        document = Document()
        document.add_paragraph('Meeting moved to Thursday.')
        document.add_paragraph('Bring the signed contract.')
        path = self.temp_dir / 'memo.docx'
        document.save(str(path))

        result = self.extractor.extract_sync(path)

        self.assertTrue(result.success)
        self.assertEqual(result.format, ExtractionFormat.WORD)
        self.assertIn('Meeting moved to Thursday.', result.text)
        self.assertIn('Bring the signed contract.', result.text)

    def test_xlsx_renders_each_sheet(self):
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = 'Budget'
        sheet.append(['item', 'cost'])
        sheet.append(['laptops', 4200])
        other = workbook.create_sheet('Notes')
        other.append(['approved'])
        path = self.temp_dir / 'budget.xlsx'
        workbook.save(str(path))

        result = self.extractor.extract_sync(path)

        self.assertTrue(result.success)
        self.assertEqual(result.format, ExtractionFormat.EXCEL)
        self.assertIn('--- Sheet: Budget ---', result.text)
        self.assertIn('laptops,4200', result.text)
        self.assertIn('--- Sheet: Notes ---', result.text)

    def test_image_with_ocr_text(self):
        path = self.temp_dir / 'receipt.png'
        Image.new('RGB', (20, 20), 'white').save(path)

        with patch.object(ContentExtractor, '_run_ocr', return_value='Total due: 42.00 by 30 June 2024'):
            result = self.extractor.extract_sync(path)

        self.assertTrue(result.success)
        self.assertTrue(result.has_ocr_text)
        self.assertIsNone(result.image_base64)

    def test_image_without_text_returns_base64(self):
        path = self.temp_dir / 'photo.png'
        Image.new('RGB', (20, 20), 'blue').save(path)

        with patch.object(ContentExtractor, '_run_ocr', return_value=''):
            result = self.extractor.extract_sync(path)

        self.assertTrue(result.success)
        self.assertFalse(result.has_ocr_text)
        self.assertEqual(result.mime_type, 'image/png')
        self.assertEqual(base64.b64decode(result.image_base64), path.read_bytes())

    def test_corrupt_image(self):
        path = self._write('photo.jpg', b'not really a jpeg')

        result = self.extractor.extract_sync(path)

        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.EXTRACTION_FAILED)


class TestAsyncExtract(unittest.IsolatedAsyncioTestCase):

    async def test_extract_runs_in_thread(self):
        temp_dir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, temp_dir, ignore_errors=True)
        path = temp_dir / 'note.md'
        path.write_text('# Heading\nbody', encoding='utf-8')

        result = await ContentExtractor().extract(path, max_chars=5)

        self.assertTrue(result.success)
        self.assertEqual(result.text, '# Hea' + TRUNCATION_MARKER)


if __name__ == '__main__':
    unittest.main()
