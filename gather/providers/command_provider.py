"""External diagnostic commands (kubectl, helm) run as local processes."""

from __future__ import annotations

import logging
import subprocess
from typing import Callable, List, Optional, Sequence

from gather.core.errors import InvocationError
from gather.core.models import CollectionProfile, InvocationOutput

logger = logging.getLogger(__name__)

CommandRunner = Callable[[Sequence[str]], InvocationOutput]


def run_command(argv: Sequence[str]) -> InvocationOutput:
    """
    Spawn `argv`, wait for it and capture stdout/stderr.

    A non-zero exit status is not an error here; only failing to start the process is.
    """
    logger.debug("Running: %s", " ".join(argv))
    try:
        proc = subprocess.run(list(argv), stdout=subprocess.PIPE, stderr=subprocess.PIPE, check=False)
    except OSError as e:
        raise InvocationError(f"command failed to start: {' '.join(argv)}: {e}") from e
    return InvocationOutput(stdout=proc.stdout or b"", stderr=proc.stderr or b"", returncode=proc.returncode)


def kubectl_argv(profile: CollectionProfile, *args: str, kubeconfig: Optional[str] = None) -> List[str]:
    argv = ["kubectl", *args, "--context", profile.context_name]
    if kubeconfig:
        argv += ["--kubeconfig", kubeconfig]
    return argv


def helm_argv(profile: CollectionProfile, *args: str, kubeconfig: Optional[str] = None) -> List[str]:
    argv = ["helm"]
    if kubeconfig:
        argv.append(f"--kubeconfig={kubeconfig}")
    argv.append(f"--kube-context={profile.context_name}")
    return [*argv, *args]
