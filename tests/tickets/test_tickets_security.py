"""
🔒 Security Tests for Ticket Attachments

Covers the upload policy enforced before any ticket row is written:
1. Batch size limit (whole batch rejected)
2. Per-file size, extension and declared type checks
3. Content sniffing against extension spoofing
4. Secure storage filenames and paths
"""

from unittest.mock import patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase, override_settings

from apps.tickets.security import (
    AttachmentPolicy,
    AttachmentValidator,
    generate_secure_filename,
    get_secure_upload_path,
    sniff_mime_type,
)
from tests.factories.support_desk import PDF_BYTES, exe_upload, pdf_upload, png_upload


class AttachmentValidatorTest(SimpleTestCase):
    """🔒 Batch and per-file upload policy"""

    def setUp(self):
        self.validator = AttachmentValidator(AttachmentPolicy())

    def test_valid_batch_is_accepted(self):
        """✅ Real PDF and PNG files pass every check"""
        files = [pdf_upload(), png_upload()]

        result = self.validator.validate(files)

        self.assertTrue(result.is_valid)
        self.assertEqual(result.accepted, files)
        self.assertEqual(result.errors, [])

    def test_empty_batch_is_valid(self):
        result = self.validator.validate(None)

        self.assertTrue(result.is_valid)
        self.assertEqual(result.accepted, [])

    def test_six_files_rejected_wholesale(self):
        """🚨 A batch over the limit yields one error and no per-file checks"""
        files = [pdf_upload(f'doc{i}.pdf') for i in range(6)]

        with patch.object(self.validator, 'validate_file') as validate_file:
            result = self.validator.validate(files)

        validate_file.assert_not_called()
        self.assertTrue(result.too_many_files)
        self.assertEqual(result.errors, ['Maximum 5 files allowed'])
        self.assertEqual(result.accepted, [])

    def test_executable_reported_alone(self):
        """🚨 Only the offending file is named; nothing in the batch is accepted"""
        files = [pdf_upload('invoice.pdf'), exe_upload('malware.exe'), png_upload('photo.png')]

        result = self.validator.validate(files)

        self.assertFalse(result.is_valid)
        self.assertEqual(result.accepted, [])
        self.assertEqual(
            result.errors,
            [
                'File malware.exe: type .exe is not allowed',
                'Invalid file type for malware.exe: application/x-msdownload',
            ],
        )

    def test_oversized_file_reports_size(self):
        policy = AttachmentPolicy(max_size_bytes=len(PDF_BYTES) - 1)
        validator = AttachmentValidator(policy)

        result = validator.validate([pdf_upload('big.pdf')])

        self.assertIn('File big.pdf exceeds maximum size of 0MB', result.errors)

    def test_file_can_report_size_and_type_together(self):
        """One file may violate several rules at once"""
        validator = AttachmentValidator(AttachmentPolicy(max_size_bytes=10))
        big_exe = SimpleUploadedFile('tool.exe', b'MZ' + b'\x00' * 100, content_type='application/x-msdownload')

        result = validator.validate([big_exe])

        self.assertEqual(len(result.errors), 3)
        self.assertTrue(result.errors[0].startswith('File tool.exe exceeds maximum size'))
        self.assertEqual(result.errors[1], 'File tool.exe: type .exe is not allowed')

    def test_empty_file_rejected(self):
        empty = SimpleUploadedFile('blank.pdf', b'', content_type='application/pdf')

        result = self.validator.validate([empty])

        self.assertEqual(result.errors, ['File blank.pdf is empty'])

    def test_spoofed_extension_detected_by_content(self):
        """🚨 An executable renamed to .pdf is caught by content sniffing"""
        spoofed = SimpleUploadedFile('invoice.pdf', b'MZ\x90\x00' + b'\x00' * 60, content_type='application/pdf')

        result = self.validator.validate([spoofed])

        self.assertEqual(result.errors, ['File invoice.pdf content does not match its .pdf extension'])

    def test_declared_type_checked_independently(self):
        """A correct extension does not excuse a disallowed declared type"""
        upload = SimpleUploadedFile('report.pdf', PDF_BYTES, content_type='text/html')

        result = self.validator.validate([upload])

        self.assertEqual(result.errors, ['Invalid file type for report.pdf: text/html'])

    def test_suspicious_filename_rejected(self):
        upload = SimpleUploadedFile('inv<oice>.pdf', PDF_BYTES, content_type='application/pdf')

        result = self.validator.validate([upload])

        self.assertEqual(result.errors, ['File inv<oice>.pdf has an invalid name'])

    @override_settings(TICKET_ATTACHMENT_POLICY={'max_files': 2, 'allowed_extensions': ['.PDF']})
    def test_policy_from_settings(self):
        policy = AttachmentPolicy.from_settings()

        self.assertEqual(policy.max_files, 2)
        self.assertEqual(policy.allowed_extensions, frozenset({'pdf'}))
        self.assertEqual(policy.max_size_bytes, 10_485_760)


class SniffMimeTypeTest(SimpleTestCase):
    def test_pdf_detected_from_content(self):
        self.assertEqual(sniff_mime_type(pdf_upload()), 'application/pdf')

    def test_empty_file(self):
        empty = SimpleUploadedFile('blank.png', b'', content_type='image/png')
        self.assertEqual(sniff_mime_type(empty), 'application/x-empty')

    def test_signature_fallback_without_python_magic(self):
        with patch('apps.tickets.security.HAS_PYTHON_MAGIC', False):
            self.assertEqual(sniff_mime_type(png_upload()), 'image/png')
            self.assertEqual(sniff_mime_type(exe_upload()), 'application/octet-stream')

    def test_sniffing_rewinds_the_file(self):
        upload = pdf_upload()
        sniff_mime_type(upload)
        self.assertEqual(upload.read(4), b'%PDF')


class SecureFilenameTest(SimpleTestCase):
    def test_secure_filename_keeps_only_extension(self):
        name = generate_secure_filename('My Résumé (final).PDF')

        self.assertTrue(name.startswith('ticket_'))
        self.assertTrue(name.endswith('.pdf'))
        self.assertNotIn('Résumé', name)

    def test_secure_filenames_are_unique(self):
        names = {generate_secure_filename('a.pdf') for _ in range(20)}
        self.assertEqual(len(names), 20)

    def test_upload_path_is_scoped_to_ticket(self):
        path = get_secure_upload_path(42, 'ticket_x.pdf')

        self.assertTrue(path.startswith('tickets/attachments/'))
        self.assertTrue(path.endswith('/42/ticket_x.pdf'))
