"""
Central configuration, imports, availability flags, and constants.

All optional library imports and their availability flags are managed here.
Other modules import what they need from this module.
"""
import os
import sys
import logging

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

from filetriage.user_config import get_config_value

# --- Ensure pefile is available (Critical Dependency) ---
try:
    import pefile
except ImportError:
    print("[!] CRITICAL ERROR: The 'pefile' library is not found.", file=sys.stderr)
    print("[!] This library is essential for the script to function.", file=sys.stderr)
    print("[!] Install it with: pip install pefile", file=sys.stderr)
    sys.exit(1)

# --- Logging Setup ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')
logger = logging.getLogger("FileTriage")

PACKAGE_DIR = Path(__file__).resolve().parent
INDEX_HTML_PATH = PACKAGE_DIR / "static" / "index.html"

# --- Optional Library Imports & Availability Flags ---
CRYPTOGRAPHY_AVAILABLE = False
CRYPTOGRAPHY_IMPORT_ERROR = None
try:
    from cryptography.hazmat.primitives.serialization import pkcs7
    CRYPTOGRAPHY_AVAILABLE = True
except ImportError as e:
    CRYPTOGRAPHY_IMPORT_ERROR = str(e)

SIGNIFY_AVAILABLE = False
SIGNIFY_IMPORT_ERROR = None
try:
    from signify.authenticode import AuthenticodeFile, AuthenticodeVerificationResult
    SIGNIFY_AVAILABLE = True
except ImportError as e:
    SIGNIFY_IMPORT_ERROR = str(e)

# --- Availability Logging ---
if CRYPTOGRAPHY_AVAILABLE: logger.debug("Cryptography library found.")
else: logger.warning(f"Cryptography library not found. Signer certificates will not be parsed. Import error: {CRYPTOGRAPHY_IMPORT_ERROR}")
if SIGNIFY_AVAILABLE: logger.debug("Signify library found.")
else: logger.warning(f"Signify library not found. Authenticode verification will be skipped. Import error: {SIGNIFY_IMPORT_ERROR}")

# --- Constants ---
# Rendered in place of any probe or digest that could not be produced.
UNAVAILABLE = "N/A"
UNKNOWN_TYPE = "unknown"
PE_MIME = "application/vnd.microsoft.portable-executable"

# Probe names, in pipeline order. The catalog itself lives in filetriage.probes.
PROBE_INFER = "infer"
PROBE_FILE = "file"
PROBE_TRID = "trid"
PROBE_EXIFTOOL = "exiftool"
PROBE_CAPA = "capa"
PROBE_PECLI = "pecli"
ALL_PROBES = (PROBE_INFER, PROBE_FILE, PROBE_TRID, PROBE_EXIFTOOL, PROBE_CAPA, PROBE_PECLI)
DEFAULT_ENABLED_PROBES = (PROBE_INFER, PROBE_FILE, PROBE_CAPA, PROBE_PECLI)

DEFAULT_UPLOAD_DIR = "./uploads"
DEFAULT_PROBE_TIMEOUT = 120
DEFAULT_PECLI_SUBCOMMAND = "info"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_MAX_UPLOAD_MB = 256
UPLOAD_CHUNK_SIZE = 1024 * 1024


def _safe_env_int(key: str, default: int) -> int:
    """Read an environment variable as int with fallback to default."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except (ValueError, TypeError):
        logger.warning("Invalid value for %s=%r, using default %d", key, val, default)
        return default


MAX_CONCURRENT_ANALYSES = _safe_env_int("FILETRIAGE_MAX_CONCURRENT_ANALYSES", 4)


@dataclass(frozen=True)
class Settings:
    """Resolved deployment settings for one process."""
    upload_dir: str = DEFAULT_UPLOAD_DIR
    enabled_probes: Tuple[str, ...] = DEFAULT_ENABLED_PROBES
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    probe_timeouts: Dict[str, float] = field(default_factory=dict)
    tool_paths: Dict[str, str] = field(default_factory=dict)
    pecli_subcommand: str = DEFAULT_PECLI_SUBCOMMAND
    delete_after_analysis: bool = False
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_MB * 1024 * 1024
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    def is_enabled(self, probe_name: str) -> bool:
        return probe_name in self.enabled_probes

    def executable_for(self, probe_name: str, default: str) -> str:
        return self.tool_paths.get(probe_name) or default

    def timeout_for(self, probe_name: str) -> float:
        return self.probe_timeouts.get(probe_name, self.probe_timeout)


def parse_probe_list(value: Optional[str]) -> Tuple[str, ...]:
    """Parse a comma-separated probe list, dropping unknown names with a warning."""
    if value is None:
        return DEFAULT_ENABLED_PROBES
    names = []
    for raw_name in value.split(","):
        name = raw_name.strip().lower()
        if not name:
            continue
        if name not in ALL_PROBES:
            logger.warning(f"Ignoring unknown probe '{name}'. Known probes: {', '.join(ALL_PROBES)}")
            continue
        if name not in names:
            names.append(name)
    return tuple(names)


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_number(key: str, value: Optional[str], default, cast=int):
    if value is None:
        return default
    try:
        return cast(value)
    except (ValueError, TypeError):
        logger.warning("Invalid value for %s=%r, using default %s", key, value, default)
        return default


def load_settings(**overrides: Any) -> Settings:
    """
    Build a Settings object.

    Resolution order for every key: explicit keyword override, environment
    variable, ~/.filetriage/config.json, built-in default.
    """
    tool_paths = {}
    probe_timeouts = {}
    for probe_name in ALL_PROBES:
        tool_path = get_config_value(f"{probe_name}_path")
        if tool_path:
            tool_paths[probe_name] = tool_path
        probe_timeout = _parse_number(f"{probe_name}_timeout", get_config_value(f"{probe_name}_timeout"), None, float)
        if probe_timeout is not None:
            probe_timeouts[probe_name] = probe_timeout

    resolved: Dict[str, Any] = {
        "upload_dir": get_config_value("upload_dir") or DEFAULT_UPLOAD_DIR,
        "enabled_probes": parse_probe_list(get_config_value("enabled_probes")),
        "probe_timeout": _parse_number("probe_timeout", get_config_value("probe_timeout"), DEFAULT_PROBE_TIMEOUT, float),
        "probe_timeouts": probe_timeouts,
        "tool_paths": tool_paths,
        "pecli_subcommand": get_config_value("pecli_subcommand") or DEFAULT_PECLI_SUBCOMMAND,
        "delete_after_analysis": _parse_bool(get_config_value("delete_after_analysis")),
        "max_upload_bytes": _parse_number("max_upload_mb", get_config_value("max_upload_mb"), DEFAULT_MAX_UPLOAD_MB) * 1024 * 1024,
        "host": get_config_value("host") or DEFAULT_HOST,
        "port": _parse_number("port", get_config_value("port"), DEFAULT_PORT),
    }
    resolved.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**resolved)
