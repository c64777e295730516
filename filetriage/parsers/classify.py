"""File-type classification: byte signature sniffing and delegated-tool output parsing."""
from typing import Optional

import filetype

from filetriage.config import PE_MIME

# filetype reports some types under legacy names; map them to the names used in reports.
_MIME_ALIASES = {
    "application/x-msdownload": PE_MIME,
}

# filetype only inspects the leading bytes of a buffer.
_SNIFF_WINDOW = 8192


def sniff_mime(data: bytes) -> Optional[str]:
    """Return the MIME type matched by the artifact's magic bytes, or None.

    Pure function of the buffer: never touches the filesystem and never raises.
    """
    if not data:
        return None
    try:
        kind = filetype.guess(data[:_SNIFF_WINDOW])
    except Exception:
        return None
    if kind is None:
        return None
    return _MIME_ALIASES.get(kind.mime, kind.mime)


def is_pe_mime(mime: Optional[str]) -> bool:
    return mime == PE_MIME


def extract_command_filetype(raw_output: str, path: str) -> str:
    """Strip the ``"<path>: "`` prefix that file(1)-style tools print.

    >>> extract_command_filetype("/tmp/x: PDF document, version 1.4", "/tmp/x")
    'PDF document, version 1.4'
    """
    text = raw_output.strip()
    prefix = f"{path}:"
    if text.startswith(prefix):
        return text[len(prefix):].strip()
    # The tool may print the path in another form (relative, quoted).
    _, sep, remainder = text.partition(": ")
    if sep:
        return remainder.strip()
    return text


def summarize_trid_output(raw_output: str) -> str:
    """Keep only the candidate lines (those carrying a ``%`` confidence), comma-joined in order."""
    candidates = [line.strip() for line in raw_output.splitlines() if "%" in line]
    return ",".join(candidates)
