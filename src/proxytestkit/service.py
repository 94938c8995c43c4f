"""Start and stop the service under test through its command line."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

from .config import ServiceConfig
from .config import default_conf_path

DEFAULT_BIN_PATH = "bin/kong"

logger = logging.getLogger("proxytestkit.service")


def run_service(
    args: Sequence[str] | str,
    working_dir: str | os.PathLike[str] | None = None,
    bin_path: str = DEFAULT_BIN_PATH,
) -> tuple[bool, str]:
    """Run the service binary with ``args``; return ``(ok, stderr)``.

    A non-zero exit status is reported through ``ok``, not raised.
    """
    if isinstance(args, str):
        args = shlex.split(args)
    cmd = [bin_path, *args]
    logger.debug("running %s", shlex.join(cmd))
    try:
        proc = subprocess.run(cmd, cwd=working_dir, capture_output=True, text=True, check=False)
    except OSError as e:
        return False, str(e)
    if proc.returncode != 0:
        logger.debug("%s exited with %d: %s", cmd[0], proc.returncode, proc.stderr.strip())
    return proc.returncode == 0, proc.stderr


class ServiceController:
    def __init__(
        self,
        config: ServiceConfig,
        conf_path: str | os.PathLike[str] | None = None,
        bin_path: str = DEFAULT_BIN_PATH,
        working_dir: str | os.PathLike[str] | None = None,
    ):
        self.config = config
        self.conf_path = Path(conf_path) if conf_path is not None else default_conf_path()
        self.bin_path = bin_path
        self.working_dir = working_dir

    def _prefix(self, prefix: str | os.PathLike[str] | None) -> str:
        return os.fspath(prefix) if prefix is not None else self.config.prefix

    def exec(self, args: Sequence[str], prefix: str | os.PathLike[str] | None = None) -> tuple[bool, str]:
        return run_service(
            [*args, "--prefix", self._prefix(prefix)],
            working_dir=self.working_dir,
            bin_path=self.bin_path,
        )

    def start(self, prefix: str | os.PathLike[str] | None = None) -> tuple[bool, str]:
        return self.exec(["start", "--conf", os.fspath(self.conf_path)], prefix)

    def stop(self, prefix: str | os.PathLike[str] | None = None) -> tuple[bool, str]:
        return self.exec(["stop"], prefix)

    def prepare_prefix(self, prefix: str | os.PathLike[str] | None = None) -> Path:
        path = Path(self._prefix(prefix))
        path.mkdir(parents=True, exist_ok=True)
        return path

    def clean_prefix(self, prefix: str | os.PathLike[str] | None = None) -> None:
        path = Path(self._prefix(prefix))
        if path.exists():
            shutil.rmtree(path)
