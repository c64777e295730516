"""Tests for filetriage/main.py and filetriage/cli/printers.py - CLI mode."""
import hashlib
import json

import pytest

from filetriage.cli.printers import print_report_cli
from filetriage.main import main, _build_parser, _resolve_settings


class TestResolveSettings:
    def test_probe_list_and_skips(self):
        args = _build_parser().parse_args(["--input-file", "x", "--probes", "infer,file,capa", "--skip-capa"])
        assert _resolve_settings(args).enabled_probes == ("infer", "file")

    def test_skip_from_defaults(self):
        args = _build_parser().parse_args(["--input-file", "x", "--skip-pecli"])
        assert "pecli" not in _resolve_settings(args).enabled_probes
        assert "infer" in _resolve_settings(args).enabled_probes

    def test_server_options(self):
        args = _build_parser().parse_args(["--server", "--host", "0.0.0.0", "--port", "9000",
                                           "--upload-dir", "/srv/up", "--probe-timeout", "5"])
        settings = _resolve_settings(args)
        assert (settings.host, settings.port, settings.upload_dir) == ("0.0.0.0", 9000, "/srv/up")
        assert settings.probe_timeout == 5.0


class TestCliMode:
    def test_json_report(self, sample_file, capsys):
        data = b"%PDF-1.4\ncli test\n"
        main(["--input-file", sample_file(data, "doc.pdf"), "--json", "--probes", "infer"])
        report = json.loads(capsys.readouterr().out)
        assert report["sha256"] == hashlib.sha256(data).hexdigest()
        assert report["filetype_infer"] == "application/pdf"

    def test_text_report(self, sample_file, capsys):
        main(["--input-file", sample_file(b"%PDF-1.4\n", "doc.pdf"), "--probes", "infer"])
        out = capsys.readouterr().out
        assert "--- File Hashes ---" in out
        assert "application/pdf" in out

    def test_missing_input_exits(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["--input-file", str(tmp_path / "missing.bin")])
        assert exc_info.value.code == 1

    def test_requires_a_mode(self):
        with pytest.raises(SystemExit):
            main([])


class TestConfigCommands:
    def test_set_config_persists_and_feeds_settings(self, isolated_config, capsys):
        _, cfg_file = isolated_config
        main(["--set-config", "probe_timeout=7", "--set-config", "enabled_probes=infer,file"])
        assert json.loads(cfg_file.read_text()) == {"enabled_probes": "infer,file", "probe_timeout": "7"}
        assert "Saved 'probe_timeout'" in capsys.readouterr().out
        settings = _resolve_settings(_build_parser().parse_args(["--input-file", "x"]))
        assert settings.enabled_probes == ("infer", "file")
        assert settings.probe_timeout == 7

    def test_per_tool_timeout_key_accepted(self, isolated_config):
        main(["--set-config", "capa_timeout=300"])
        settings = _resolve_settings(_build_parser().parse_args(["--input-file", "x"]))
        assert settings.timeout_for("capa") == 300

    def test_set_config_rejects_unknown_key(self, isolated_config):
        _, cfg_file = isolated_config
        with pytest.raises(SystemExit) as exc_info:
            main(["--set-config", "colour=blue"])
        assert exc_info.value.code == 2
        assert not cfg_file.exists()

    def test_set_config_requires_equals(self, isolated_config):
        with pytest.raises(SystemExit):
            main(["--set-config", "upload_dir"])

    def test_unset_config(self, isolated_config, capsys):
        _, cfg_file = isolated_config
        main(["--set-config", "upload_dir=/srv/up"])
        main(["--unset-config", "upload_dir", "--unset-config", "port"])
        out = capsys.readouterr().out
        assert "Removed 'upload_dir'" in out
        assert "'port' was not set" in out
        assert json.loads(cfg_file.read_text()) == {}

    def test_show_config_notes_env_overrides(self, isolated_config, monkeypatch, capsys):
        main(["--set-config", "host=0.0.0.0"])
        capsys.readouterr()
        monkeypatch.setenv("FILETRIAGE_PORT", "9000")
        main(["--show-config"])
        shown = json.loads(capsys.readouterr().out)
        assert shown["host"] == "0.0.0.0"
        assert "FILETRIAGE_PORT" in shown["_env_overrides"]["port"]

    def test_config_commands_need_no_mode(self, isolated_config, capsys):
        main(["--show-config"])
        assert json.loads(capsys.readouterr().out) == {}


class TestPrinters:
    def test_probe_errors_and_signature_printed(self, capsys):
        report = {
            "filesize": "1.00 KB",
            "filetype_infer": "application/vnd.microsoft.portable-executable (PE SIGNATURE STATUS UNKNOWN)",
            "md5": "0" * 32,
            "capa_command": "N/A",
            "pecli_command": "",
            "pe_signature": {"status": "unknown", "subjects": [], "error": "SignatureLookupError: bad table"},
            "probe_errors": {"capa": "executable 'capa' not found"},
        }
        print_report_cli(report, "/tmp/a.exe")
        out = capsys.readouterr().out
        assert "PE SIGNATURE STATUS UNKNOWN" in out
        assert "--- PE Signature ---" in out
        assert "bad table" in out
        assert "executable 'capa' not found" in out
        assert "--- pecli Output ---" not in out
