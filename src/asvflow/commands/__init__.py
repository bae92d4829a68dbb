# src/asvflow/commands/__init__.py
"""
Command package.

Submodules are imported explicitly by asvflow.cli to avoid circular imports.
Do NOT import submodules here.
"""
__all__ = [
    "init",
    "doctor",
    "resolve",
    "filter_reads",
    "learn_errors",
    "denoise_runs",
    "merge_tables",
    "remove_chimeras",
    "classify",
    "build_table",
    "auto_run",
]
