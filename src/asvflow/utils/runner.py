# src/asvflow/utils/runner.py
from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from asvflow.utils.logger import get_logger

LOG = get_logger("runner")

Arg = Union[str, Path, int, float]


def run_command(
    cmd: Sequence[Arg],
    *,
    capture: bool = False,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    label: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """
    Run an external tool and log it under *label* (default: the executable name).

    capture=False lets the tool write straight to the console; capture=True buffers
    stdout/stderr, which are logged at ERROR if the tool fails.
    Raises CalledProcessError on a non-zero exit and FileNotFoundError when the
    executable is missing.
    """
    argv = [str(c) for c in cmd]
    tag = label or Path(argv[0]).name
    LOG.info("[%s] %s", tag, " ".join(argv))

    env_dict = os.environ.copy()
    if env:
        env_dict.update({str(k): str(v) for k, v in env.items()})

    try:
        result = subprocess.run(
            argv,
            check=True,
            cwd=str(cwd) if cwd else None,
            env=env_dict,
            text=True,
            capture_output=capture,
        )
    except FileNotFoundError:
        LOG.error("[%s] executable not found: %s (PATH=%s)", tag, argv[0], env_dict.get("PATH", ""))
        raise
    except subprocess.CalledProcessError as e:
        for stream, text in (("stdout", e.stdout), ("stderr", e.stderr)):
            if text:
                LOG.error("[%s] %s:\n%s", tag, stream, text.strip())
        LOG.error("[%s] exited with code %s", tag, e.returncode)
        raise

    if capture and result.stdout:
        LOG.debug("[%s] stdout:\n%s", tag, result.stdout.strip())
    return result
