"""External-process probes: catalog, uniform invocation, failure isolation.

Every delegated probe is run as ``<tool> [subcommand] <artifact-path>`` and
its standard output is the probe result. Spawn failures, non-zero exits and
timeouts are turned into a failed ``ProbeResult`` (and a logged warning) so
that one broken tool only affects its own report field.
"""
import asyncio
import time

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from filetriage.config import (
    logger, Settings, UNAVAILABLE,
    PROBE_INFER, PROBE_FILE, PROBE_TRID, PROBE_EXIFTOOL, PROBE_CAPA, PROBE_PECLI,
)
from filetriage.parsers.classify import extract_command_filetype, summarize_trid_output

# Pipeline stages a probe can belong to.
STAGE_CLASSIFIER = "classifier"
STAGE_METADATA = "metadata"
STAGE_PE = "pe"

# Upper bound of stderr kept in a failure reason.
_STDERR_EXCERPT = 500


@dataclass(frozen=True)
class ProbeSpec:
    name: str
    field: str
    stage: str
    executable: Optional[str] = None
    subcommand_key: Optional[str] = None
    postprocess: Optional[Callable[[str, str], str]] = None

    @property
    def external(self) -> bool:
        return self.executable is not None


@dataclass(frozen=True)
class ProbeResult:
    name: str
    output: Optional[str]
    ok: bool
    error: Optional[str] = None
    elapsed: float = 0.0

    def text(self) -> str:
        """Report rendering: the output, or the UNAVAILABLE placeholder."""
        return self.output if self.ok and self.output is not None else UNAVAILABLE


def _file_postprocess(raw: str, path: str) -> str:
    return extract_command_filetype(raw, path)


def _trid_postprocess(raw: str, path: str) -> str:
    return summarize_trid_output(raw)


PROBE_CATALOG: Dict[str, ProbeSpec] = {
    spec.name: spec for spec in (
        # Signature sniffing runs in-process over the byte buffer.
        ProbeSpec(PROBE_INFER, "filetype_infer", STAGE_CLASSIFIER),
        ProbeSpec(PROBE_FILE, "filetype_command", STAGE_CLASSIFIER, executable="file",
                  postprocess=_file_postprocess),
        ProbeSpec(PROBE_TRID, "filetype_trid", STAGE_CLASSIFIER, executable="trid",
                  postprocess=_trid_postprocess),
        ProbeSpec(PROBE_EXIFTOOL, "exiftool_command", STAGE_METADATA, executable="exiftool"),
        ProbeSpec(PROBE_CAPA, "capa_command", STAGE_PE, executable="capa"),
        ProbeSpec(PROBE_PECLI, "pecli_command", STAGE_PE, executable="pecli",
                  subcommand_key="pecli_subcommand"),
    )
}


def probes_for_stage(stage: str, settings: Settings) -> list:
    """Enabled external probes of *stage*, in catalog order."""
    return [
        spec for spec in PROBE_CATALOG.values()
        if spec.stage == stage and spec.external and settings.is_enabled(spec.name)
    ]


def build_command(spec: ProbeSpec, path: str, settings: Settings) -> list:
    command = [settings.executable_for(spec.name, spec.executable)]
    if spec.subcommand_key:
        subcommand = getattr(settings, spec.subcommand_key, None)
        if subcommand:
            command.append(subcommand)
    command.append(path)
    return command


async def run_probe(spec: ProbeSpec, path: str, settings: Settings) -> ProbeResult:
    """Run one external probe against *path*. Never raises for tool failures."""
    command = build_command(spec, path, settings)
    timeout = settings.timeout_for(spec.name)
    started = time.monotonic()

    def _failed(reason: str) -> ProbeResult:
        logger.warning(f"Probe '{spec.name}' failed: {reason}")
        return ProbeResult(spec.name, None, False, reason, time.monotonic() - started)

    logger.debug(f"Running probe '{spec.name}': {command}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        return _failed(f"executable '{command[0]}' not found")
    except PermissionError:
        return _failed(f"executable '{command[0]}' is not runnable (permission denied)")
    except OSError as e:
        return _failed(f"could not start '{command[0]}': {e}")

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        try:
            proc.kill()
            await proc.wait()
        except ProcessLookupError:
            pass  # Already exited
        return _failed(f"timed out after {timeout:g}s")

    if proc.returncode != 0:
        err_msg = stderr.decode(errors="replace").strip()[:_STDERR_EXCERPT]
        return _failed(f"exit status {proc.returncode}" + (f": {err_msg}" if err_msg else ""))

    output = stdout.decode("utf-8", errors="replace")
    if spec.postprocess is not None:
        try:
            output = spec.postprocess(output, path)
        except Exception as e:
            return _failed(f"unparseable output: {type(e).__name__}: {e}")

    elapsed = time.monotonic() - started
    logger.debug(f"Probe '{spec.name}' finished in {elapsed:.2f}s")
    return ProbeResult(spec.name, output, True, None, elapsed)


async def run_probes(specs: Iterable[ProbeSpec], path: str, settings: Settings) -> Dict[str, ProbeResult]:
    """Run independent probes concurrently, keyed by probe name."""
    specs = list(specs)
    if not specs:
        return {}
    results = await asyncio.gather(*(run_probe(spec, path, settings) for spec in specs))
    return {result.name: result for result in results}
