# src/asvflow/store/checkpoint.py
from __future__ import annotations

import csv
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from asvflow.errors import ArtifactMissing, ArtifactSchemaError, CheckpointError
from asvflow.store.artifacts import ArtifactSpec
from asvflow.utils.logger import get_logger

LOG = get_logger("store")

Row = Dict[str, str]


class CheckpointStore:
    """
    Named, typed artifacts under one project directory.

    Every write goes to a hidden temporary sibling and is published with os.replace,
    so readers only ever see complete artifacts.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def path(self, spec: ArtifactSpec, run: Optional[str] = None) -> Path:
        if spec.per_run and not run:
            raise ValueError(f"Artifact {spec.name!r} is keyed by run")
        return self.root / spec.path.format(run=run or "")

    def exists(self, spec: ArtifactSpec, run: Optional[str] = None) -> bool:
        return self.path(spec, run).is_file()

    def runs_with(self, spec: ArtifactSpec) -> List[str]:
        """Run ids for which *spec* has been published."""
        runs_dir = self.root / "runs"
        if not runs_dir.is_dir():
            return []
        return sorted(d.name for d in runs_dir.iterdir() if d.is_dir() and self.exists(spec, d.name))

    # ---------------------------
    # Publishing
    # ---------------------------

    @contextmanager
    def _staged(self, final: Path) -> Iterator[Path]:
        tmp = final.with_name(f".{final.name}.tmp")
        try:
            final.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CheckpointError(f"Cannot create {final.parent}: {e}") from e
        try:
            yield tmp
            os.replace(tmp, final)
        except OSError as e:
            raise CheckpointError(f"Failed to publish {final}: {e}") from e
        finally:
            if tmp.exists():
                tmp.unlink()

    def publish_rows(
        self,
        spec: ArtifactSpec,
        rows: Iterable[Row],
        *,
        run: Optional[str] = None,
        samples: Sequence[str] = (),
    ) -> Path:
        header = self._header(spec, samples)
        final = self.path(spec, run)
        with self._staged(final) as tmp:
            n = 0
            with tmp.open("w", encoding="utf-8", newline="") as fh:
                w = csv.DictWriter(fh, fieldnames=header, delimiter="\t", lineterminator="\n",
                                   extrasaction="raise")
                w.writeheader()
                for row in rows:
                    missing = [c for c in header if c not in row]
                    if missing:
                        raise ArtifactSchemaError(f"{spec.name}: row is missing columns {missing}")
                    try:
                        w.writerow(row)
                    except ValueError as e:
                        raise ArtifactSchemaError(f"{spec.name}: {e}") from e
                    n += 1
        LOG.info("Published %s → %s (%d rows)", spec.name, final, n)
        return final

    @contextmanager
    def publish_blob(self, spec: ArtifactSpec, *, run: Optional[str] = None) -> Iterator[Path]:
        """
        Yield a temporary path for an external producer to write to.

        The blob is published only if the block exits cleanly and the producer created the file.
        """
        final = self.path(spec, run)
        with self._staged(final) as tmp:
            yield tmp
            if not tmp.is_file():
                raise CheckpointError(f"{spec.name}: producer did not create {tmp}")
        LOG.info("Published %s → %s", spec.name, final)

    # ---------------------------
    # Reading
    # ---------------------------

    def read_rows(self, spec: ArtifactSpec, *, run: Optional[str] = None) -> Tuple[List[str], List[Row]]:
        """Return (sample columns, rows). Sample columns are empty unless the spec has them."""
        p = self.path(spec, run)
        if not p.is_file():
            raise ArtifactMissing(f"{spec.name} not published yet: {p}")
        with p.open("r", encoding="utf-8", newline="") as fh:
            reader = csv.DictReader(fh, delimiter="\t")
            header = list(reader.fieldnames or [])
            rows = list(reader)
        fixed = list(spec.columns)
        if header[: len(fixed)] != fixed:
            raise ArtifactSchemaError(f"{spec.name} at {p}: expected leading columns {fixed}, found {header[:len(fixed)]}")
        extra = header[len(fixed):]
        if extra and not spec.sample_columns:
            raise ArtifactSchemaError(f"{spec.name} at {p}: unexpected columns {extra}")
        for i, row in enumerate(rows, start=2):
            if None in row or any(v is None for v in row.values()):
                raise ArtifactSchemaError(f"{spec.name} at {p}: line {i} has the wrong number of fields")
        return extra, rows

    @staticmethod
    def _header(spec: ArtifactSpec, samples: Sequence[str]) -> List[str]:
        if samples and not spec.sample_columns:
            raise ArtifactSchemaError(f"{spec.name} does not take per-sample columns")
        clash = set(samples) & set(spec.columns)
        if clash:
            raise ArtifactSchemaError(f"{spec.name}: sample names collide with fixed columns {sorted(clash)}")
        if len(set(samples)) != len(samples):
            raise ArtifactSchemaError(f"{spec.name}: duplicate sample columns")
        return list(spec.columns) + list(samples)
