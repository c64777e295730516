"""CLI printing and output formatting functions."""
import json

from typing import Dict, Any

from filetriage.config import UNAVAILABLE
from filetriage.utils import safe_print

# Labels for the report fields, in print order.
_SECTIONS = (
    ("File Type", (
        ("filetype_infer", "Signature"),
        ("filetype_command", "file"),
        ("filetype_trid", "TrID"),
    )),
    ("File Hashes", (
        ("filesize", "Size"),
        ("md5", "MD5"),
        ("sha1", "SHA1"),
        ("sha256", "SHA256"),
        ("sha384", "SHA384"),
        ("humanhash", "Humanhash"),
        ("fuzzy_hash", "SSDeep"),
    )),
)

_TOOL_OUTPUT_FIELDS = (
    ("exiftool_command", "ExifTool"),
    ("capa_command", "capa"),
    ("pecli_command", "pecli"),
)


def _print_field_cli(label: str, value: Any):
    safe_print(f"  {label:<12}: {value if value not in (None, '') else UNAVAILABLE}")


def _print_signature_cli(signature: Dict[str, Any]):
    safe_print("\n--- PE Signature ---")
    safe_print(f"  Status      : {signature.get('status')}")
    for subject in signature.get("subjects", []):
        safe_print(f"  Subject     : {subject}")
    verification = signature.get("verification")
    if verification:
        safe_print(f"  Verification: {verification.get('status_description')} (valid: {verification.get('is_valid')})")
        if verification.get("error"):
            safe_print(f"  Verify Error: {verification['error']}")
    if signature.get("error"):
        safe_print(f"  Error       : {signature['error']}")


def print_report_cli(report: Dict[str, Any], filepath: str):
    """Print a serialized report as grouped text sections."""
    safe_print(f"[*] Report for: {filepath}")
    for title, fields in _SECTIONS:
        safe_print(f"\n--- {title} ---")
        for key, label in fields:
            if key in report:
                _print_field_cli(label, report[key])

    if report.get("pe_signature"):
        _print_signature_cli(report["pe_signature"])

    for key, label in _TOOL_OUTPUT_FIELDS:
        value = report.get(key)
        # Empty means the tool was not applicable to this artifact.
        if not value:
            continue
        safe_print(f"\n--- {label} Output ---")
        for line in str(value).rstrip().splitlines():
            safe_print(f"  {line}")

    errors = report.get("probe_errors") or {}
    if errors:
        safe_print("\n--- Probe Errors ---")
        for name, reason in errors.items():
            safe_print(f"  {name:<12}: {reason}")


def print_report_json(report: Dict[str, Any]):
    safe_print(json.dumps(report, indent=2))
