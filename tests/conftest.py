"""Shared fixtures for FileTriage tests."""
import os
import stat
import struct

import pytest

from filetriage import user_config
from filetriage.config import Settings

# Minimal buffer the signature sniffer classifies as a Windows executable.
PE_LIKE_BYTES = b"MZ" + b"\x90" * 62 + b"This program cannot be run in DOS mode.\r\n" + b"\x00" * 128


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from ~/.filetriage and FILETRIAGE_* variables of the host."""
    cfg_dir = tmp_path / ".filetriage"
    monkeypatch.setattr(user_config, "CONFIG_DIR", cfg_dir)
    monkeypatch.setattr(user_config, "CONFIG_FILE", cfg_dir / "config.json")
    for env_var in user_config._ENV_VAR_MAP.values():
        monkeypatch.delenv(env_var, raising=False)
    return cfg_dir, cfg_dir / "config.json"


@pytest.fixture
def fake_tool(tmp_path):
    """Factory writing an executable shell script that stands in for an external tool."""
    tools_dir = tmp_path / "tools"
    tools_dir.mkdir()

    def _make(name, body):
        script = tools_dir / name
        script.write_text("#!/bin/sh\n" + body + "\n")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(script)

    return _make


@pytest.fixture
def make_settings(tmp_path):
    """Settings factory with no external probes enabled unless asked for."""
    def _make(**kwargs):
        kwargs.setdefault("upload_dir", str(tmp_path / "uploads"))
        kwargs.setdefault("enabled_probes", ("infer",))
        kwargs.setdefault("probe_timeout", 10)
        return Settings(**kwargs)
    return _make


@pytest.fixture
def sample_file(tmp_path):
    """Factory writing an artifact to disk and returning its absolute path."""
    def _make(data, name="sample.bin"):
        path = tmp_path / name
        path.write_bytes(data)
        return os.path.abspath(str(path))
    return _make


def build_pe(certificate_table=b""):
    """Smallest PE32 image pefile accepts: one .text section, optional certificate table appended."""
    dos_header = bytearray(0x40)
    dos_header[0:2] = b"MZ"
    struct.pack_into("<I", dos_header, 0x3C, 0x40)

    file_header = struct.pack("<HHIIIHH", 0x14C, 1, 0, 0, 0, 0xE0, 0x0102)
    optional_header = struct.pack(
        "<HBB9I6H4I2H6I",
        0x10B, 14, 0,
        0x200, 0, 0, 0x1000, 0x1000, 0x2000, 0x400000, 0x1000, 0x200,
        6, 0, 0, 0, 6, 0,
        0, 0x2000, 0x200, 0,
        2, 0,
        0x100000, 0x1000, 0x100000, 0x1000, 0, 16,
    )
    cert_offset = 0x400
    directories = [(0, 0)] * 16
    if certificate_table:
        # The security directory holds a file offset.
        directories[4] = (cert_offset, len(certificate_table))
    data_directories = b"".join(struct.pack("<II", va, size) for va, size in directories)
    section = struct.pack("<8sIIIIIIHHI", b".text", 0x1000, 0x1000, 0x200, 0x200, 0, 0, 0, 0, 0x60000020)

    headers = bytes(dos_header) + b"PE\x00\x00" + file_header + optional_header + data_directories + section
    headers += b"\x00" * (0x200 - len(headers))
    text = b"\xc3" + b"\x00" * 0x1FF
    return headers + text + certificate_table


def win_certificate(blob, cert_type=0x0002):
    """One WIN_CERTIFICATE entry, padded to 8 bytes."""
    entry = struct.pack("<IHH", 8 + len(blob), 0x0200, cert_type) + blob
    return entry + b"\x00" * (-len(entry) % 8)


@pytest.fixture(scope="session")
def pkcs7_signature():
    """DER PKCS#7 SignedData with an embedded self-signed certificate (CN=FileTriage Test Signer)."""
    pytest.importorskip("cryptography")
    import datetime

    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.hazmat.primitives.serialization import pkcs7
    from cryptography.x509.oid import NameOID

    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "FileTriage Test Signer")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return (
        pkcs7.PKCS7SignatureBuilder()
        .set_data(b"filetriage test content")
        .add_signer(cert, key, hashes.SHA256())
        .sign(serialization.Encoding.DER, [])
    )
