# src/asvflow/config/schema.py
from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

# <run>_<rest>[_A|_B]  e.g. RUN01_soil3_A  ->  run=RUN01, logical=RUN01_soil3, replicate=A
DEFAULT_SAMPLE_PATTERN = r"^(?P<logical>(?P<run>[A-Za-z0-9]+)_.+?)(?:_(?P<replicate>[AB]))?$"

POOLING_METHODS = ("pooled", "pseudo", "independent")
CHIMERA_METHODS = ("pooled", "consensus", "per-sample")


class Params(BaseModel):
    """Pipeline configuration. Built once at start-up and never mutated."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # paths
    forward_dir: Optional[Path] = None
    reverse_dir: Optional[Path] = None
    project_dir: Path = Path("asvflow-project")
    training_set: Optional[Path] = None

    # sample set
    forward_suffix: str = "_R1.fastq.gz"
    reverse_suffix: str = "_R2.fastq.gz"
    min_file_bytes: int = 100
    sample_pattern: str = DEFAULT_SAMPLE_PATTERN

    # filter and trim
    trunc_len_f: int = 0
    trunc_len_r: int = 0
    trim_left_f: int = 0
    trim_left_r: int = 0
    max_ee_f: float = 2.0
    max_ee_r: float = 2.0
    trunc_q: int = 2
    max_n: int = 0
    rm_phix: bool = True
    min_reads: int = 1000

    # error model
    n_bases_learn: int = 100_000_000

    # denoise / merge
    pooling_method: str = "pooled"
    min_overlap: int = 12
    max_mismatch: int = 0
    on_sample_error: str = "skip"

    # chimeras
    chimera_method: str = "pooled"

    # taxonomy
    tax_threshold: int = 50
    tax_strand: str = "top"

    # final table
    min_abundance: int = 2
    min_occurrence: int = 1

    # execution
    jobs: int = 1
    threads: int = 1
    rscript: str = "Rscript"
    show_r: bool = False

    @field_validator("pooling_method")
    @classmethod
    def _check_pooling(cls, v: str) -> str:
        if v not in POOLING_METHODS:
            raise ValueError(f"pooling_method must be one of: {', '.join(POOLING_METHODS)}")
        return v

    @field_validator("chimera_method")
    @classmethod
    def _check_chimera(cls, v: str) -> str:
        if v not in CHIMERA_METHODS:
            raise ValueError(f"chimera_method must be one of: {', '.join(CHIMERA_METHODS)}")
        return v

    @field_validator("on_sample_error")
    @classmethod
    def _check_on_error(cls, v: str) -> str:
        if v not in ("skip", "abort"):
            raise ValueError("on_sample_error must be one of: skip, abort")
        return v

    @field_validator("tax_strand")
    @classmethod
    def _check_strand(cls, v: str) -> str:
        if v not in ("top", "bottom", "both"):
            raise ValueError("tax_strand must be one of: top, bottom, both")
        return v

    @field_validator("sample_pattern")
    @classmethod
    def _check_pattern(cls, v: str) -> str:
        try:
            rx = re.compile(v)
        except re.error as e:
            raise ValueError(f"sample_pattern is not a valid regex: {e}") from e
        if "run" not in rx.groupindex:
            raise ValueError("sample_pattern must define a named group 'run'")
        return v

    @field_validator(
        "min_file_bytes", "min_reads", "min_overlap", "max_mismatch",
        "min_abundance", "min_occurrence", "trunc_len_f", "trunc_len_r",
        "trim_left_f", "trim_left_r", "max_n",
    )
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("jobs", "threads")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v
