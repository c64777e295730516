"""Authenticode signature lookup and verification for PE files."""
import struct
import warnings

from typing import Dict, Any, List, Optional

from filetriage.config import (
    logger, pefile,
    CRYPTOGRAPHY_AVAILABLE, SIGNIFY_AVAILABLE, SIGNIFY_IMPORT_ERROR,
)

if CRYPTOGRAPHY_AVAILABLE:
    from cryptography.hazmat.primitives.serialization import pkcs7

if SIGNIFY_AVAILABLE:
    from signify.authenticode import AuthenticodeFile, AuthenticodeVerificationResult

# Terminal states of the lookup.
SIGNATURE_SIGNED = "signed"
SIGNATURE_UNSIGNED = "unsigned"
SIGNATURE_UNKNOWN = "unknown"

WIN_CERT_TYPE_PKCS_SIGNED_DATA = 0x0002
_WIN_CERT_HEADER_SIZE = 8


class SignatureLookupError(Exception):
    """The PE or its certificate table could not be parsed."""


def _read_certificate_table(pe) -> Optional[bytes]:
    """Return the raw certificate table, or None if the PE carries none."""
    sec_dir_idx = pefile.DIRECTORY_ENTRY['IMAGE_DIRECTORY_ENTRY_SECURITY']
    data_dirs = getattr(pe.OPTIONAL_HEADER, 'DATA_DIRECTORY', None) or []
    if len(data_dirs) <= sec_dir_idx:
        return None
    entry = data_dirs[sec_dir_idx]
    # The security directory holds a file offset, not an RVA.
    offset, size = entry.VirtualAddress, entry.Size
    if offset == 0 or size == 0:
        return None
    table = bytes(pe.__data__[offset:offset + size])
    if len(table) < size:
        raise SignatureLookupError(
            f"[lookup_authenticode] Certificate table at {hex(offset)} (size {hex(size)}) extends past end of file."
        )
    return table


def _iter_pkcs7_blobs(table: bytes) -> List[bytes]:
    """Split a certificate table into its PKCS#7 SignedData entries."""
    blobs = []
    pos = 0
    while pos + _WIN_CERT_HEADER_SIZE <= len(table):
        length, _revision, cert_type = struct.unpack_from('<IHH', table, pos)
        if length == 0 and not any(table[pos:]):
            # Zero padding after the last entry (common on installers tagged after signing).
            break
        if length < _WIN_CERT_HEADER_SIZE or pos + length > len(table):
            raise SignatureLookupError(f"[lookup_authenticode] Malformed WIN_CERTIFICATE entry at table offset {pos} (length {length}).")
        if cert_type == WIN_CERT_TYPE_PKCS_SIGNED_DATA:
            blobs.append(table[pos + _WIN_CERT_HEADER_SIZE:pos + length])
        # Entries are 8-byte aligned.
        pos += (length + 7) & ~7
    return blobs


def _signer_subjects(blobs: List[bytes]) -> List[str]:
    subjects = []
    for blob in blobs:
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", UserWarning)
                warnings.simplefilter("ignore", DeprecationWarning)
                certs = pkcs7.load_der_pkcs7_certificates(blob)
        except ValueError as e:
            raise SignatureLookupError(f"[lookup_authenticode] PKCS#7 signature blob could not be parsed: {e}") from e
        subjects.extend(cert.subject.rfc4514_string() for cert in certs)
    return subjects


def lookup_authenticode(filepath: str) -> Dict[str, Any]:
    """
    Look up the embedded Authenticode signature of the PE at *filepath*.

    Returns a dict with ``status`` (SIGNATURE_SIGNED or SIGNATURE_UNSIGNED)
    and, when signed, the certificate ``subjects`` found in the signature.
    Raises SignatureLookupError if the file is not a parseable PE or its
    certificate table is malformed.
    """
    try:
        pe = pefile.PE(filepath, fast_load=True)
    except pefile.PEFormatError as e:
        raise SignatureLookupError(f"[lookup_authenticode] Not a valid PE file: {e}") from e
    except OSError as e:
        raise SignatureLookupError(f"[lookup_authenticode] Could not read '{filepath}': {e}") from e

    try:
        table = _read_certificate_table(pe)
    finally:
        pe.close()

    if table is None:
        return {"status": SIGNATURE_UNSIGNED, "subjects": []}

    blobs = _iter_pkcs7_blobs(table)
    if not blobs:
        return {"status": SIGNATURE_UNSIGNED, "subjects": []}

    subjects: List[str] = []
    if CRYPTOGRAPHY_AVAILABLE:
        subjects = _signer_subjects(blobs)
    else:
        logger.debug("cryptography not available; reporting signature presence only.")
    return {"status": SIGNATURE_SIGNED, "subjects": subjects}


def verify_authenticode(filepath: str) -> Dict[str, Any]:
    """Validate the signature chain with signify. Never raises."""
    if not SIGNIFY_AVAILABLE:
        return {"status_description": "Signify library not available.", "is_valid": None,
                "error": SIGNIFY_IMPORT_ERROR}
    try:
        with open(filepath, 'rb') as f:
            auth_file = AuthenticodeFile.from_stream(f)
            status, err = auth_file.explain_verify()
            result: Dict[str, Any] = {
                "status_description": str(status),
                "is_valid": status == AuthenticodeVerificationResult.OK,
                "error": str(err) if err else None,
            }
            signer_names = []
            for sig in auth_file.signatures:
                signer_info = getattr(sig, 'signer_info', None)
                if signer_info is None:
                    continue
                if getattr(signer_info, 'program_name', None):
                    signer_names.append(signer_info.program_name)
                elif hasattr(signer_info, 'issuer'):
                    signer_names.append(str(signer_info.issuer))
            if signer_names:
                result["signers"] = signer_names
            return result
    except Exception as e:
        logger.warning(f"Signify validation error for '{filepath}': {type(e).__name__}: {e}")
        return {"status_description": "Verification failed.", "is_valid": False,
                "error": f"{type(e).__name__}: {e}"}
