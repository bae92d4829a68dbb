# src/asvflow/samples/resolve.py
from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Optional

from asvflow.errors import PairingMismatch, SampleNameError
from asvflow.samples.types import Sample, SampleSet, by_name
from asvflow.utils.logger import get_logger

LOG = get_logger("samples")


def list_read_files(directory: Path, suffix: str, *, min_bytes: int = 0) -> Dict[str, Path]:
    """
    Map sample name -> file for every file in *directory* ending with *suffix*.

    Files at or below *min_bytes* are treated as failed sequencing output and skipped.
    """
    if not directory.is_dir():
        raise NotADirectoryError(directory)
    found: Dict[str, Path] = {}
    for p in sorted(directory.iterdir()):
        if not p.is_file() or not p.name.endswith(suffix):
            continue
        size = p.stat().st_size
        if size <= min_bytes:
            LOG.warning("Skipping %s (%d bytes <= %d)", p.name, size, min_bytes)
            continue
        found[p.name[: -len(suffix)]] = p.resolve()
    return found


def parse_sample_name(name: str, pattern: str) -> Dict[str, Optional[str]]:
    """
    Apply the sample-name pattern. Returns {'run', 'logical', 'replicate'}.

    The pattern must define a named group 'run'; 'logical' and 'replicate' are optional.
    """
    m = re.fullmatch(pattern, name)
    if not m:
        raise SampleNameError(f"Sample name {name!r} does not match pattern {pattern!r}")
    groups = m.groupdict()
    run = groups.get("run")
    if not run:
        raise SampleNameError(f"Sample name {name!r}: pattern matched but 'run' group is empty")
    replicate = groups.get("replicate") or None
    logical = groups.get("logical") or name
    if not replicate:
        logical = name
    return {"run": run, "logical": logical, "replicate": replicate}


def resolve_sample_set(
    forward_dir: Path,
    reverse_dir: Path,
    *,
    forward_suffix: str,
    reverse_suffix: str,
    sample_pattern: str,
    min_bytes: int = 0,
) -> SampleSet:
    fwd = list_read_files(forward_dir, forward_suffix, min_bytes=min_bytes)
    rev = list_read_files(reverse_dir, reverse_suffix, min_bytes=min_bytes)

    f_names = sorted(fwd)
    r_names = sorted(rev)
    if len(f_names) != len(r_names):
        only_f = sorted(set(f_names) - set(r_names))
        only_r = sorted(set(r_names) - set(f_names))
        raise PairingMismatch(
            f"{len(f_names)} forward vs {len(r_names)} reverse files "
            f"(forward only: {only_f[:5]}; reverse only: {only_r[:5]})"
        )
    for f, r in zip(f_names, r_names):
        if f != r:
            raise PairingMismatch(f"Forward file {f!r} is paired by position with reverse file {r!r}")

    samples: List[Sample] = []
    for name in f_names:
        parsed = parse_sample_name(name, sample_pattern)
        samples.append(Sample(
            name=name,
            run=parsed["run"] or "",
            logical=parsed["logical"] or name,
            forward=fwd[name],
            reverse=rev[name],
            replicate=parsed["replicate"],
        ))

    sset = SampleSet(tuple(sorted(samples, key=by_name)))
    _check_replicates(sset)
    LOG.info("Resolved %d sample(s) in %d run(s): %s",
             len(sset), len(sset.runs), ", ".join(r.id for r in sset.runs))
    return sset


def _check_replicates(sset: SampleSet) -> None:
    seen: Dict[tuple, str] = {}
    for s in sset:
        if s.replicate is None:
            continue
        key = (s.logical, s.replicate)
        if key in seen:
            raise SampleNameError(f"Samples {seen[key]!r} and {s.name!r} are the same replicate of {s.logical!r}")
        seen[key] = s.name
    members: Dict[str, List[Sample]] = {}
    for s in sset:
        members.setdefault(s.logical, []).append(s)
    for logical, group in members.items():
        plain = [s.name for s in group if s.replicate is None]
        if plain and len(group) > 1:
            others = [s.name for s in group if s.name not in plain]
            raise SampleNameError(
                f"Sample {plain[0]!r} has no replicate suffix but shares logical name {logical!r} with {others}"
            )
    runs_by_logical = {logical: {s.run for s in group} for logical, group in members.items()}
    split = sorted(k for k, v in runs_by_logical.items() if len(v) > 1)
    if split:
        raise SampleNameError(f"Replicate halves must share a run; split across runs: {split[:5]}")
