# caforge/storage/artifacts.py
"""
All-or-nothing output files. Files are written into a hidden staging
directory inside the output directory and moved into place by commit().
Leaving the block without commit, or a failed commit, leaves no new files.
"""
import logging
import os
import tempfile
from typing import List

from caforge.common.errors import InvalidParameter

log = logging.getLogger(__name__)

PRIVATE_MODE = 0o600


class StagedOutput:
    def __init__(self, out_dir: str):
        self.out_dir = out_dir
        self._tmp = None
        self._staged = []
        self.committed: List[str] = []

    def __enter__(self):
        try:
            os.makedirs(self.out_dir, exist_ok=True)
            self._tmp = tempfile.TemporaryDirectory(prefix=".caforge-", dir=self.out_dir)
        except OSError as exc:
            raise InvalidParameter(f"cannot write to output directory {self.out_dir}: {exc}", stage="output") from exc
        return self

    def __exit__(self, exc_type, exc, tb):
        self._tmp.cleanup()
        self._tmp = None
        return False

    def add(self, filename: str, data: bytes, private: bool = False) -> None:
        """Stage `data` under `filename`; private files are readable by the owner only."""
        path = os.path.join(self._tmp.name, filename)
        try:
            with open(path, "wb") as f:
                f.write(data)
            if private:
                os.chmod(path, PRIVATE_MODE)
        except OSError as exc:
            raise InvalidParameter(f"cannot stage {filename}: {exc}", stage="output") from exc
        self._staged.append(filename)

    def commit(self) -> List[str]:
        """Move every staged file into the output directory. Returns the final paths."""
        for filename in self._staged:
            src = os.path.join(self._tmp.name, filename)
            dst = os.path.join(self.out_dir, filename)
            try:
                os.replace(src, dst)
            except OSError as exc:
                self._rollback()
                raise InvalidParameter(f"cannot write {dst}: {exc}", stage="output") from exc
            self.committed.append(dst)
            log.debug("wrote %s", dst)
        self._staged = []
        return list(self.committed)

    def _rollback(self) -> None:
        for path in self.committed:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
        self.committed = []
