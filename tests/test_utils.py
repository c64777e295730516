"""Unit tests for filetriage/utils.py - filename sanitizing and safe printing."""
import pytest

from filetriage.utils import sanitize_filename, safe_print


class TestSanitizeFilename:
    @pytest.mark.parametrize("raw,expected", [
        ("report.pdf", "report.pdf"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Windows\\System32\\calc.exe", "calc.exe"),
        ("a<b>c|d?.exe", "a_b_c_d_.exe"),
        ("..hidden..", "_hidden_"),
    ])
    def test_cases(self, raw, expected):
        assert sanitize_filename(raw) == expected

    @pytest.mark.parametrize("raw", ["", "/", "   ", "dir/", " . "])
    def test_empty_results_use_default(self, raw):
        assert sanitize_filename(raw) == "upload.bin"

    def test_control_characters_removed(self):
        assert sanitize_filename("bad\x07name\x1b.bin") == "badname.bin"

    def test_length_capped_keeping_extension(self):
        result = sanitize_filename("a" * 500 + ".exe")
        assert len(result) == 200
        assert result.endswith(".exe")

    def test_never_contains_separator(self):
        for raw in ("x/y/z", "x\\y\\z", "/abs/path/file"):
            assert "/" not in sanitize_filename(raw)


class TestSafePrint:
    def test_basic_print(self, capsys):
        safe_print("hello world")
        assert "hello world" in capsys.readouterr().out

    def test_with_prefix(self, capsys):
        safe_print("message", verbose_prefix="[*] ")
        assert "[*] message" in capsys.readouterr().out
