# src/asvflow/pipeline/processor.py
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from asvflow.analysis.provenance import FAILED, OK, ProvenanceRecord, parse_count, run_provenance_row
from asvflow.config.schema import Params
from asvflow.dada2.backend import DenoisedSample, InferenceBackend
from asvflow.errors import ArtifactMissing, AsvflowError, AttritionError, StageError
from asvflow.pipeline.filtering import PASS, filtered_paths
from asvflow.pipeline.report import StageReport
from asvflow.samples.types import Run, Sample
from asvflow.store import artifacts as A
from asvflow.store.checkpoint import CheckpointStore
from asvflow.tables.seqtab import SequenceTable
from asvflow.utils.logger import get_logger

LOG = get_logger("denoise")

STRANDS = ("F", "R")


class RunProcessor:
    """
    Dereplicate, denoise and merge every sample of one run.

    Samples are handled sequentially with the run's error models; every sample that passed
    filtering gets exactly one provenance row, failed samples included.
    """

    def __init__(self, run: Run, *, params: Params, store: CheckpointStore, backend: InferenceBackend):
        self.run = run
        self.params = params
        self.store = store
        self.backend = backend
        self.work_dir = store.root / "work" / run.id
        self.records: Dict[str, ProvenanceRecord] = {}

    def _fail(self, sample: str, err: Exception) -> None:
        if self.params.on_sample_error == "abort":
            raise err
        rec = self.records[sample]
        rec.status = FAILED
        rec.error = str(err).replace("\t", " ").replace("\n", " ")
        LOG.warning("Run %s: sample %s failed: %s", self.run.id, sample, err)

    def _active(self, names: Sequence[str]) -> List[str]:
        return [n for n in names if self.records[n].status != FAILED]

    def _load_samples(self) -> List[Sample]:
        _, rows = self.store.read_rows(A.FILTER_STATS, run=self.run.id)
        by_name = {r["sample"]: r for r in rows}
        samples = []
        for s in self.run.samples:
            row = by_name.get(s.name)
            if row is None or row["status"] != PASS:
                continue
            rec = ProvenanceRecord(sample=s.name, run=self.run.id)
            rec.update(reads_in=parse_count(row["reads.in"]), reads_out=parse_count(row["reads.out"]))
            self.records[s.name] = rec
            samples.append(s)
        return samples

    def _error_model(self, strand: str) -> Path:
        spec = A.error_model_spec(strand)
        if not self.store.exists(spec, self.run.id):
            raise ArtifactMissing(f"Run {self.run.id}: error model {strand} not learned yet")
        return self.store.path(spec, self.run.id)

    def _dereplicate(self, samples: Sequence[Sample]) -> Dict[str, Dict[str, Path]]:
        dereps: Dict[str, Dict[str, Path]] = {"F": {}, "R": {}}
        for s in samples:
            fq = filtered_paths(self.store, s)
            try:
                for idx, strand in enumerate(STRANDS):
                    dereps[strand][s.name] = self.backend.dereplicate(
                        fq[idx], self.work_dir / f"{s.name}.derep{strand}.rds"
                    )
            except StageError as e:
                self._fail(s.name, e)
        return dereps

    def _denoise(self, dereps: Mapping[str, Mapping[str, Path]]) -> Dict[str, Dict[str, DenoisedSample]]:
        calls: Dict[str, Dict[str, DenoisedSample]] = {"F": {}, "R": {}}
        for strand in STRANDS:
            err = self._error_model(strand)
            todo = {n: p for n, p in dereps[strand].items() if self.records[n].status != FAILED}
            if self.params.pooling_method == "independent":
                batches = [{n: p} for n, p in todo.items()]
            else:
                batches = [todo] if todo else []
            for batch in batches:
                try:
                    got = self.backend.denoise(batch, err, self.work_dir, pool=self.params.pooling_method,
                                               params=self.params)
                except StageError as e:
                    for n in batch:
                        self._fail(n, e)
                    continue
                calls[strand].update(got)
        return calls

    def process(self) -> StageReport:
        report = StageReport("denoise", self.run.id)
        samples = self._load_samples()
        self.work_dir.mkdir(parents=True, exist_ok=True)

        merged_counts: Dict[str, Dict[str, int]] = {}
        if samples:
            dereps = self._dereplicate(samples)
            calls = self._denoise(dereps)
            for s in samples:
                rec = self.records[s.name]
                if rec.status == FAILED:
                    continue
                fwd, rev = calls["F"].get(s.name), calls["R"].get(s.name)
                if fwd is None or rev is None:
                    self._fail(s.name, StageError(f"no denoised {'F' if fwd is None else 'R'} call returned"))
                    continue
                try:
                    merged = self.backend.merge_pairs(
                        fwd, dereps["F"][s.name], rev, dereps["R"][s.name],
                        min_overlap=self.params.min_overlap, max_mismatch=self.params.max_mismatch,
                    )
                except StageError as e:
                    self._fail(s.name, e)
                    continue
                rec.update(
                    denoised_f_read=fwd.reads, denoised_f_seq=fwd.variants,
                    denoised_r_read=rev.reads, denoised_r_seq=rev.variants,
                    merged_read=sum(merged.values()), merged_seq=len(merged),
                )
                rec.status = OK
                merged_counts[s.name] = merged

        ok = [s.name for s in samples if self.records[s.name].status == OK]
        table = SequenceTable.from_counts(merged_counts, samples=ok)
        for name in ok:
            if table.sample_total(name) != self.records[name].merged_read:
                raise AttritionError(f"{name}: table total differs from merged.read")

        self.store.publish_rows(A.RUN_SEQTAB, table.to_rows(with_ids=False), run=self.run.id, samples=ok)
        self.store.publish_rows(
            A.RUN_PROVENANCE,
            [run_provenance_row(self.records[s.name]) for s in samples],
            run=self.run.id,
        )
        report.processed = len(ok)
        report.failed = len(samples) - len(ok)
        report.excluded = len(self.run.samples) - len(samples)
        return report.log()


def process_run(run: Run, *, params: Params, store: CheckpointStore, backend: InferenceBackend) -> StageReport:
    return RunProcessor(run, params=params, store=store, backend=backend).process()


def process_runs(
    runs: Sequence[Run],
    *,
    params: Params,
    store: CheckpointStore,
    backend: InferenceBackend,
) -> List[StageReport]:
    """Process runs as independent tasks, up to params.jobs at a time."""
    reports: Dict[str, StageReport] = {}
    failures: Dict[str, Exception] = {}
    with ThreadPoolExecutor(max_workers=params.jobs) as pool:
        futures = {
            pool.submit(process_run, run, params=params, store=store, backend=backend): run.id
            for run in runs
        }
        for future in as_completed(futures):
            run_id = futures[future]
            try:
                reports[run_id] = future.result()
            except AsvflowError as e:
                LOG.error("Run %s failed: %s", run_id, e)
                failures[run_id] = e
    if failures:
        first = sorted(failures)[0]
        raise StageError(f"{len(failures)} run(s) failed: {', '.join(sorted(failures))}") from failures[first]
    return [reports[r.id] for r in runs]
