"""Report assembly: runs every probe over one artifact and folds the results into one record."""
import asyncio
import os

from dataclasses import dataclass, field, replace
from typing import Dict, Any, Optional

from filetriage.config import (
    logger, load_settings, Settings, UNKNOWN_TYPE,
    PROBE_INFER,
)
from filetriage.parsers.classify import sniff_mime, is_pe_mime
from filetriage.parsers.digests import digest_artifact
from filetriage.parsers.signatures import (
    lookup_authenticode, verify_authenticode,
    SIGNATURE_SIGNED, SIGNATURE_UNSIGNED, SIGNATURE_UNKNOWN,
)
from filetriage.probes import (
    PROBE_CATALOG, ProbeResult, run_probes, probes_for_stage,
    STAGE_CLASSIFIER, STAGE_METADATA, STAGE_PE,
)

_SIGNATURE_SUFFIXES = {
    SIGNATURE_SIGNED: "(SIGNED PE FILE)",
    SIGNATURE_UNSIGNED: "(NOT SIGNED PE FILE!!!)",
    SIGNATURE_UNKNOWN: "(PE SIGNATURE STATUS UNKNOWN)",
}

# Serialized field order of the report.
_FIELD_ORDER = (
    "filesize", "filetype_infer", "filetype_command", "filetype_trid",
    "md5", "sha256", "sha1", "sha384", "humanhash", "fuzzy_hash",
    "exiftool_command", "capa_command", "pecli_command",
    "pe_signature", "probe_errors",
)

# PE-only text fields are always present, empty when the sub-pipeline did not run.
_PE_ONLY_FIELDS = ("capa_command", "pecli_command")


class AnalysisError(Exception):
    """The artifact itself could not be analyzed."""


@dataclass(frozen=True)
class TypeLabel:
    """Primary classification: unknown, identified, or identified with a signature status."""
    mime: Optional[str] = None
    signature: Optional[str] = None

    @property
    def is_unknown(self) -> bool:
        return self.mime is None

    def annotate(self, signature_status: str) -> "TypeLabel":
        if self.mime is None:
            raise ValueError("Cannot annotate an unknown type label.")
        if self.signature is not None:
            raise ValueError(f"Type label is already annotated ({self.signature}).")
        if signature_status not in _SIGNATURE_SUFFIXES:
            raise ValueError(f"Unknown signature status '{signature_status}'.")
        return replace(self, signature=signature_status)

    def __str__(self) -> str:
        if self.mime is None:
            return UNKNOWN_TYPE
        if self.signature is None:
            return self.mime
        return f"{self.mime} {_SIGNATURE_SUFFIXES[self.signature]}"


@dataclass(frozen=True)
class Artifact:
    path: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def load(cls, path: str) -> "Artifact":
        """Read the artifact once. Any failure here is fatal to the analysis."""
        abs_path = os.path.abspath(path)
        try:
            with open(abs_path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise AnalysisError(f"[analyze_file] Cannot read artifact '{abs_path}': {e}") from e
        return cls(abs_path, data)


@dataclass(frozen=True)
class AnalysisReport:
    filesize: str
    filetype_infer: Optional[TypeLabel]
    md5: str
    sha256: str
    sha1: str
    sha384: str
    humanhash: str
    fuzzy_hash: str
    # Delegated probe output keyed by report field. Disabled probes have no entry.
    probe_fields: Dict[str, Optional[str]] = field(default_factory=dict)
    pe_signature: Optional[Dict[str, Any]] = None
    probe_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def is_pe(self) -> bool:
        return self.filetype_infer is not None and is_pe_mime(self.filetype_infer.mime)

    def to_dict(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {
            "filesize": self.filesize,
            "filetype_infer": str(self.filetype_infer) if self.filetype_infer is not None else None,
            "md5": self.md5,
            "sha256": self.sha256,
            "sha1": self.sha1,
            "sha384": self.sha384,
            "humanhash": self.humanhash,
            "fuzzy_hash": self.fuzzy_hash,
            "pe_signature": self.pe_signature,
            "probe_errors": dict(self.probe_errors),
        }
        values.update(self.probe_fields)
        for pe_field in _PE_ONLY_FIELDS:
            values.setdefault(pe_field, "")

        out = {}
        for key in _FIELD_ORDER:
            if key in ("pe_signature", "probe_errors"):
                out[key] = values[key]
            elif values.get(key) is not None:
                out[key] = values[key]
        return out


def _fold(results: Dict[str, ProbeResult], fields: Dict[str, Optional[str]], errors: Dict[str, str]) -> None:
    for name, result in results.items():
        fields[PROBE_CATALOG[name].field] = result.text()
        if not result.ok:
            errors[name] = result.error or "failed"


async def _run_pe_subpipeline(artifact: Artifact, settings: Settings,
                              fields: Dict[str, Optional[str]], errors: Dict[str, str]):
    """Signature lookup plus the PE-only probes. Returns (status, signature detail)."""
    pe_specs = probes_for_stage(STAGE_PE, settings)
    probe_task = asyncio.ensure_future(run_probes(pe_specs, artifact.path, settings))

    try:
        lookup = await asyncio.to_thread(lookup_authenticode, artifact.path)
        status = lookup["status"]
        detail: Dict[str, Any] = {"status": status, "subjects": lookup.get("subjects", [])}
        if status == SIGNATURE_SIGNED:
            detail["verification"] = await asyncio.to_thread(verify_authenticode, artifact.path)
    except Exception as e:
        # A malformed PE still gets the rest of its report.
        reason = f"{type(e).__name__}: {e}"
        logger.warning(f"Signature lookup failed for '{artifact.path}': {reason}")
        errors["signature"] = reason
        status = SIGNATURE_UNKNOWN
        detail = {"status": status, "subjects": [], "error": reason}

    if status == SIGNATURE_SIGNED:
        logger.info(f"The file '{artifact.path}' is a signed PE.")
    elif status == SIGNATURE_UNSIGNED:
        logger.info(f"The file '{artifact.path}' is not a signed PE file.")

    _fold(await probe_task, fields, errors)
    return status, detail


async def analyze_artifact(artifact: Artifact, settings: Settings) -> AnalysisReport:
    # Fields of disabled probes are never set, which leaves them out of the report.
    fields: Dict[str, Optional[str]] = {}
    errors: Dict[str, str] = {}

    # 1. Type classification: bytes first, then the delegated classifiers.
    primary: Optional[TypeLabel] = None
    if settings.is_enabled(PROBE_INFER):
        primary = TypeLabel(sniff_mime(artifact.data))
        logger.debug(f"Signature sniffing of '{artifact.path}': {primary}")
    _fold(await run_probes(probes_for_stage(STAGE_CLASSIFIER, settings), artifact.path, settings),
          fields, errors)

    # 2. Digests. CPU-bound (pure-Python ssdeep), so off the event loop.
    digests = await asyncio.to_thread(digest_artifact, artifact.data, artifact.path)

    # 3. Always-on metadata probes.
    _fold(await run_probes(probes_for_stage(STAGE_METADATA, settings), artifact.path, settings),
          fields, errors)

    # 4. PE sub-pipeline, gated strictly on the byte-sniffed type.
    pe_signature = None
    if primary is not None and is_pe_mime(primary.mime):
        status, pe_signature = await _run_pe_subpipeline(artifact, settings, fields, errors)
        primary = primary.annotate(status)

    return AnalysisReport(
        filesize=digests["filesize"],
        filetype_infer=primary,
        md5=digests["md5"],
        sha256=digests["sha256"],
        sha1=digests["sha1"],
        sha384=digests["sha384"],
        humanhash=digests["humanhash"],
        fuzzy_hash=digests["fuzzy_hash"],
        probe_fields=fields,
        pe_signature=pe_signature,
        probe_errors=errors,
    )


async def analyze_file(filepath: str, settings: Optional[Settings] = None) -> AnalysisReport:
    """Analyze the complete artifact at *filepath*.

    Raises AnalysisError if the artifact cannot be read; every other probe
    failure is recorded in the report's ``probe_errors``.
    """
    settings = settings or load_settings()
    artifact = await asyncio.to_thread(Artifact.load, filepath)
    logger.info(f"Analyzing '{artifact.path}' ({artifact.size} bytes)")
    return await analyze_artifact(artifact, settings)


def analyze_file_sync(filepath: str, settings: Optional[Settings] = None) -> AnalysisReport:
    return asyncio.run(analyze_file(filepath, settings))
