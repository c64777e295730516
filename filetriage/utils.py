"""Utility functions for formatting and filesystem-safe naming."""
import os
import sys

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")

# Characters that are unsafe in filenames on at least one common platform.
_UNSAFE_FILENAME_CHARS = '"<>|:*?\0\n\r\t'
_FILENAME_TRANSLATION = str.maketrans(_UNSAFE_FILENAME_CHARS, '_' * len(_UNSAFE_FILENAME_CHARS))
_MAX_FILENAME_LENGTH = 200


def format_size(num_bytes: int) -> str:
    """Render a byte count with base-1024 units and two decimals.

    The largest unit whose scaled value stays below 1024 is chosen; values
    beyond the TB range are still expressed in TB.
    """
    size = float(num_bytes)
    unit_index = 0
    while size >= 1024.0 and unit_index < len(_SIZE_UNITS) - 1:
        size /= 1024.0
        unit_index += 1
    return f"{size:.2f} {_SIZE_UNITS[unit_index]}"


def sanitize_filename(name: str, default: str = "upload.bin") -> str:
    """
    Make a client-supplied filename safe to store under the upload root.
    Prevents directory traversal and strips characters that are invalid on
    common filesystems.
    """
    name = name.replace("\\", "/")
    # Keep only the final component to prevent directory traversal
    name = os.path.basename(name)
    name = name.replace("..", "_")
    name = name.translate(_FILENAME_TRANSLATION)
    name = "".join(ch for ch in name if ch.isprintable())
    name = name.strip().strip(".")

    if not name:
        return default
    if len(name) > _MAX_FILENAME_LENGTH:
        stem, ext = os.path.splitext(name)
        name = stem[:_MAX_FILENAME_LENGTH - len(ext)] + ext
    return name


def safe_print(text_to_print, verbose_prefix=""):
    try:
        print(f"{verbose_prefix}{text_to_print}")
    except UnicodeEncodeError:
        try:
            output_encoding = sys.stdout.encoding if sys.stdout.encoding else 'utf-8'
            encoded_text = str(text_to_print).encode(output_encoding, errors='backslashreplace').decode(output_encoding, errors='ignore')
            print(f"{verbose_prefix}{encoded_text} (some characters replaced/escaped)")
        except Exception:
            print(f"{verbose_prefix}<Unencodable string: contains characters not supported by output encoding>")
