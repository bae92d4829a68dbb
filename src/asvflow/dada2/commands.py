# src/asvflow/dada2/commands.py
from __future__ import annotations

import csv
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Sequence, Set

from asvflow.config.schema import Params
from asvflow.dada2.backend import DenoisedSample, FilterResult, TaxonomyCall
from asvflow.errors import StageError
from asvflow.samples.types import Sample
from asvflow.tables.seqtab import SequenceTable
from asvflow.utils.logger import get_logger
from asvflow.utils.runner import run_command

LOG = get_logger("dada2")

_POOL = {"pooled": "TRUE", "pseudo": '"pseudo"', "independent": "FALSE"}


def r_str(s: object) -> str:
    """Quote a value as an R string literal."""
    return '"' + str(s).replace("\\", "\\\\").replace('"', '\\"') + '"'


def r_vec(items: Sequence[object]) -> str:
    return "c(" + ", ".join(r_str(i) for i in items) + ")"


def r_bool(v: bool) -> str:
    return "TRUE" if v else "FALSE"


def _read_tsv(path: Path) -> List[Dict[str, str]]:
    with path.open("r", encoding="utf-8", newline="") as fh:
        return list(csv.DictReader(fh, delimiter="\t"))


class RscriptBackend:
    """
    Drives DADA2 (and DECIPHER for IDTAXA classification) through Rscript.

    Each call writes a small R script next to its outputs and exchanges data as TSV/FASTA.
    """

    def __init__(self, *, rscript: str = "Rscript", threads: int = 1, show_stdout: bool = False):
        self.rscript = rscript
        self.threads = threads
        self.show_stdout = show_stdout

    def _run(self, script: str, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(script, encoding="utf-8")
        try:
            run_command([self.rscript, "--vanilla", str(path)], capture=not self.show_stdout, label=f"R:{path.stem}")
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            raise StageError(f"R script {path.name} failed: {e}") from e

    @property
    def _mt(self) -> str:
        return str(self.threads) if self.threads > 1 else "FALSE"

    # ---------------------------
    # Filtering
    # ---------------------------

    def filter_and_trim(self, sample: Sample, fwd_out: Path, rev_out: Path, params: Params) -> FilterResult:
        stats = fwd_out.parent / f"{sample.name}.filter.tsv"
        script = f"""suppressPackageStartupMessages(library(dada2))
out <- filterAndTrim({r_str(sample.forward)}, {r_str(fwd_out)}, {r_str(sample.reverse)}, {r_str(rev_out)},
    truncLen=c({params.trunc_len_f}, {params.trunc_len_r}), trimLeft=c({params.trim_left_f}, {params.trim_left_r}),
    maxN={params.max_n}, maxEE=c({params.max_ee_f}, {params.max_ee_r}), truncQ={params.trunc_q},
    rm.phix={r_bool(params.rm_phix)}, compress=TRUE, multithread={self._mt})
write.table(data.frame(reads.in=out[, 1], reads.out=out[, 2]), {r_str(stats)},
    sep="\\t", quote=FALSE, row.names=FALSE)
"""
        self._run(script, fwd_out.parent / f"{sample.name}.filter.R")
        rows = _read_tsv(stats)
        if len(rows) != 1:
            raise StageError(f"filterAndTrim returned {len(rows)} rows for {sample.name}")
        return FilterResult(int(rows[0]["reads.in"]), int(rows[0]["reads.out"]))

    # ---------------------------
    # Error models
    # ---------------------------

    def learn_errors(self, fastqs: Sequence[Path], out: Path, params: Params) -> None:
        script = f"""suppressPackageStartupMessages(library(dada2))
set.seed(100)
err <- learnErrors({r_vec(fastqs)}, nbases={params.n_bases_learn}, randomize=TRUE, multithread={self._mt})
saveRDS(err, {r_str(out)})
"""
        self._run(script, out.parent / f"{out.stem}.learn.R")

    # ---------------------------
    # Dereplication, denoising, merging
    # ---------------------------

    def dereplicate(self, fastq: Path, out: Path) -> Path:
        script = f"""suppressPackageStartupMessages(library(dada2))
saveRDS(derepFastq({r_str(fastq)}), {r_str(out)})
"""
        self._run(script, out.with_suffix(".R"))
        return out

    def denoise(
        self,
        dereps: Mapping[str, Path],
        error_model: Path,
        out_dir: Path,
        *,
        pool: str,
        params: Params,
    ) -> Dict[str, DenoisedSample]:
        names = list(dereps)
        tag = "pool" if len(names) > 1 else names[0]
        stats = out_dir / f"{error_model.stem}.{tag}.dada.tsv"
        script = f"""suppressPackageStartupMessages(library(dada2))
err <- readRDS({r_str(error_model)})
nms <- {r_vec(names)}
dereps <- lapply({r_vec([dereps[n] for n in names])}, readRDS)
names(dereps) <- nms
dds <- dada(dereps, err=err, pool={_POOL[pool]}, multithread={self._mt})
if (inherits(dds, "dada")) {{ dds <- list(dds); names(dds) <- nms }}
out_dir <- {r_str(out_dir)}
reads <- integer(0); variants <- integer(0)
for (nm in nms) {{
    saveRDS(dds[[nm]], file.path(out_dir, paste0(nm, ".{error_model.stem}.dada.rds")))
    u <- getUniques(dds[[nm]])
    reads <- c(reads, sum(u)); variants <- c(variants, length(u))
}}
write.table(data.frame(sample=nms, reads=reads, variants=variants), {r_str(stats)},
    sep="\\t", quote=FALSE, row.names=FALSE)
"""
        self._run(script, stats.with_suffix(".R"))
        out: Dict[str, DenoisedSample] = {}
        for row in _read_tsv(stats):
            name = row["sample"]
            out[name] = DenoisedSample(
                sample=name,
                handle=out_dir / f"{name}.{error_model.stem}.dada.rds",
                reads=int(row["reads"]),
                variants=int(row["variants"]),
            )
        return out

    def merge_pairs(
        self,
        fwd: DenoisedSample,
        fwd_derep: Path,
        rev: DenoisedSample,
        rev_derep: Path,
        *,
        min_overlap: int,
        max_mismatch: int,
    ) -> Dict[str, int]:
        out = fwd.handle.parent / f"{fwd.sample}.merged.tsv"
        script = f"""suppressPackageStartupMessages(library(dada2))
mg <- mergePairs(readRDS({r_str(fwd.handle)}), readRDS({r_str(fwd_derep)}),
    readRDS({r_str(rev.handle)}), readRDS({r_str(rev_derep)}),
    minOverlap={min_overlap}, maxMismatch={max_mismatch})
write.table(data.frame(sequence=mg$sequence, abundance=mg$abundance), {r_str(out)},
    sep="\\t", quote=FALSE, row.names=FALSE)
"""
        self._run(script, out.with_suffix(".R"))
        merged: Dict[str, int] = {}
        for row in _read_tsv(out):
            merged[row["sequence"]] = merged.get(row["sequence"], 0) + int(row["abundance"])
        return merged

    # ---------------------------
    # Chimeras
    # ---------------------------

    def remove_bimeras(self, table: SequenceTable, work_dir: Path, *, method: str, params: Params) -> Set[str]:
        if not table.variants:
            return set()
        work_dir.mkdir(parents=True, exist_ok=True)
        matrix = work_dir / "bimera.input.tsv"
        kept = work_dir / "bimera.kept.txt"
        with matrix.open("w", encoding="utf-8", newline="") as fh:
            w = csv.writer(fh, delimiter="\t", lineterminator="\n")
            w.writerow(["sample"] + [table.sequence(v) for v in table.variants])
            for s in table.samples:
                w.writerow([s] + [table.count(s, v) for v in table.variants])
        script = f"""suppressPackageStartupMessages(library(dada2))
st <- as.matrix(read.delim({r_str(matrix)}, check.names=FALSE, row.names=1))
storage.mode(st) <- "integer"
nochim <- removeBimeraDenovo(st, method={r_str(method)}, multithread={self._mt})
writeLines(colnames(nochim), {r_str(kept)})
"""
        self._run(script, work_dir / "bimera.R")
        keep = {ln.strip() for ln in kept.read_text(encoding="utf-8").splitlines() if ln.strip()}
        return {v for v in table.variants if table.sequence(v) not in keep}

    # ---------------------------
    # Taxonomy (IDTAXA)
    # ---------------------------

    def assign_taxonomy(
        self,
        sequences: Mapping[str, str],
        work_dir: Path,
        *,
        params: Params,
    ) -> Dict[str, TaxonomyCall]:
        if not sequences:
            return {}
        if params.training_set is None:
            raise StageError("training_set is required for classification")
        work_dir.mkdir(parents=True, exist_ok=True)
        fasta = work_dir / "variants.fasta"
        calls_tsv = work_dir / "idtaxa.tsv"
        fasta.write_text("".join(f">{vid}\n{seq}\n" for vid, seq in sequences.items()), encoding="utf-8")
        script = f"""suppressPackageStartupMessages(library(DECIPHER))
load({r_str(params.training_set)})
seqs <- readDNAStringSet({r_str(fasta)})
ids <- IdTaxa(seqs, trainingSet, strand={r_str(params.tax_strand)}, threshold={params.tax_threshold},
    processors={self.threads}, verbose=FALSE)
out <- data.frame(amplicon=names(seqs),
    taxon=sapply(ids, function(x) paste(x$taxon, collapse="|")),
    rank=sapply(ids, function(x) paste(x$rank, collapse="|")),
    confidence=sapply(ids, function(x) paste(x$confidence, collapse="|")))
write.table(out, {r_str(calls_tsv)}, sep="\\t", quote=FALSE, row.names=FALSE)
"""
        self._run(script, work_dir / "idtaxa.R")
        calls: Dict[str, TaxonomyCall] = {}
        for row in _read_tsv(calls_tsv):
            labels = tuple(x for x in (row.get("taxon") or "").split("|") if x)
            ranks = tuple(x for x in (row.get("rank") or "").split("|") if x)
            confs = tuple(float(x) for x in (row.get("confidence") or "").split("|") if x)
            if labels:
                calls[row["amplicon"]] = TaxonomyCall(labels, ranks, confs)
        return calls
