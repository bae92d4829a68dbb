# src/asvflow/errors.py
from __future__ import annotations


class AsvflowError(Exception):
    """Base class for every failure the pipeline raises on purpose."""


class PairingMismatch(AsvflowError):
    """Forward and reverse file lists cannot be aligned sample by sample."""


class SampleNameError(AsvflowError):
    """A raw filename does not match the sample-name pattern."""


class CheckpointError(AsvflowError):
    """An artifact could not be published."""


class ArtifactMissing(CheckpointError):
    pass


class ArtifactSchemaError(CheckpointError):
    """A persisted artifact does not match its column contract."""


class StageError(AsvflowError):
    """An external subsystem failed while a stage was running."""


class MergeConflictError(AsvflowError):
    """Two inputs disagree about the count of the same (sample, variant) cell."""


class IdentityCollisionError(AsvflowError):
    """Two distinct sequences mapped to the same content-addressed identifier."""


class AttritionError(AsvflowError):
    """Per-sample read counters increased between stages."""
