"""Unit tests for filetriage/parsers/classify.py - type classification helpers."""
from filetriage.config import PE_MIME
from filetriage.parsers.classify import (
    sniff_mime,
    is_pe_mime,
    extract_command_filetype,
    summarize_trid_output,
)

from conftest import PE_LIKE_BYTES


class TestSniffMime:
    def test_pe_is_normalized(self):
        assert sniff_mime(PE_LIKE_BYTES) == PE_MIME

    def test_pdf(self):
        assert sniff_mime(b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n") == "application/pdf"

    def test_png(self):
        assert sniff_mime(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32) == "image/png"

    def test_plain_text_is_unknown(self):
        assert sniff_mime(b"just some plain text\n") is None

    def test_empty_is_unknown(self):
        assert sniff_mime(b"") is None

    def test_is_pe_mime(self):
        assert is_pe_mime(PE_MIME)
        assert not is_pe_mime("application/pdf")
        assert not is_pe_mime(None)


class TestExtractCommandFiletype:
    def test_strips_path_prefix(self):
        assert extract_command_filetype("/tmp/x: PDF document, version 1.4", "/tmp/x") == "PDF document, version 1.4"

    def test_trims_trailing_newline(self):
        raw = "/tmp/x: PE32 executable (GUI) Intel 80386, for MS Windows\n"
        assert extract_command_filetype(raw, "/tmp/x") == "PE32 executable (GUI) Intel 80386, for MS Windows"

    def test_path_printed_differently(self):
        assert extract_command_filetype("x: ASCII text\n", "/tmp/x") == "ASCII text"

    def test_keeps_colons_in_description(self):
        raw = "/up/a.bin: data, created: 2024"
        assert extract_command_filetype(raw, "/up/a.bin") == "data, created: 2024"

    def test_no_separator_returns_text(self):
        assert extract_command_filetype("  data  ", "/tmp/x") == "data"


class TestSummarizeTridOutput:
    def test_keeps_only_candidate_lines(self):
        raw = (
            "TrID/32 - File Identifier v2.24\n"
            "Collecting data from file: /tmp/x\n"
            " 41.5% (.EXE) Win32 Executable MS Visual C++ (generic)\n"
            "Definitions found: 12345\n"
            " 12.0% (.DLL) Win32 Dynamic Link Library (generic)\n"
        )
        assert summarize_trid_output(raw) == (
            "41.5% (.EXE) Win32 Executable MS Visual C++ (generic),"
            "12.0% (.DLL) Win32 Dynamic Link Library (generic)"
        )

    def test_no_candidates(self):
        assert summarize_trid_output("Collecting data from file\nUnknown!\n") == ""

    def test_no_trailing_separator(self):
        assert not summarize_trid_output("100.0% (.TXT) Text\n").endswith(",")
