"""File-backed counter store with a lock file for cross-process exclusion.

The counter lives in a plain-text file holding a single integer so operators
can read and fix it by hand. Exclusion comes from creating ``<counter>.lock``
with O_EXCL; whoever creates it holds the lock and writes its token inside.

A holder that crashes leaves the lock file behind. Once the file is older
than ``stale_after`` seconds any waiter reclaims it. This trades strict
mutual exclusion (a live but very slow holder can lose its lock) for never
deadlocking on a dead one.
"""
import asyncio
import os
import secrets
import time
from pathlib import Path

import structlog

from .base import CounterStore, LockHandle, parse_counter
from ..errors import CoordinationUnavailableError, LockNotHeldError, LockTimeoutError

log = structlog.get_logger()

DEFAULT_STALE_AFTER = 10.0
DEFAULT_POLL_INTERVAL = 0.01


def _temp_sibling(path: Path) -> Path:
    return path.with_name(f".{path.name}.{os.getpid()}.{secrets.token_hex(6)}.tmp")


def _fsync_write(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` atomically: temp file, fsync, rename."""
    tmp = _temp_sibling(path)
    try:
        with open(tmp, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def _create_exclusive(path: Path, data: bytes) -> bool:
    """Create ``path`` with ``data`` unless it exists. Readers never see it half-written."""
    tmp = _temp_sibling(path)
    with open(tmp, "wb") as fh:
        fh.write(data)
        fh.flush()
        os.fsync(fh.fileno())
    try:
        os.link(tmp, path)
    except FileExistsError:
        return False
    finally:
        tmp.unlink(missing_ok=True)
    return True


class FileCounterStore(CounterStore):
    """Counter in a text file, guarded by an exclusively-created lock file."""

    name = "lock-file"

    def __init__(
        self,
        counter_path: str | os.PathLike,
        stale_after: float = DEFAULT_STALE_AFTER,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        """
        Initialize the store. Missing directories and counter file are created
        here when possible; failures are deferred to ``acquire`` so a read-only
        deployment degrades to fallback identifiers instead of refusing to start.

        Args:
            counter_path: Path of the counter text file.
            stale_after: Age in seconds after which a lock is reclaimed.
            poll_interval: Sleep between lock attempts.
        """
        self.counter_path = Path(counter_path)
        self.lock_path = self.counter_path.with_name(self.counter_path.name + ".lock")
        self.stale_after = stale_after
        self.poll_interval = poll_interval

        try:
            self.counter_path.parent.mkdir(parents=True, exist_ok=True)
            if not self.counter_path.exists() and _create_exclusive(self.counter_path, b"0"):
                log.info("counter.initialized", path=str(self.counter_path))
        except OSError as e:
            log.warning("counter.init_failed", path=str(self.counter_path), error=str(e))

    async def acquire(self, timeout: float) -> LockHandle:
        handle = LockHandle()
        deadline = time.monotonic() + timeout
        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                try:
                    reclaimed = self._reclaim_if_stale()
                except OSError as e:
                    raise self._unavailable("cannot inspect counter lock file", self.lock_path, e) from e
                if reclaimed:
                    continue
            except OSError as e:
                raise CoordinationUnavailableError(
                    "cannot create counter lock file",
                    path=str(self.lock_path),
                    error=str(e),
                    store=self.name,
                ) from e
            else:
                try:
                    os.write(fd, f"{handle.token} {os.getpid()}".encode("ascii"))
                except OSError as e:
                    self.lock_path.unlink(missing_ok=True)
                    raise self._unavailable("cannot write counter lock file", self.lock_path, e) from e
                finally:
                    os.close(fd)
                return handle

            if time.monotonic() >= deadline:
                raise LockTimeoutError(
                    "timed out waiting for counter lock",
                    path=str(self.lock_path),
                    timeout=timeout,
                    store=self.name,
                )
            await asyncio.sleep(self.poll_interval)

    def _reclaim_if_stale(self) -> bool:
        """Remove a lock file older than ``stale_after``. True if one was removed."""
        try:
            st = self.lock_path.stat()
        except FileNotFoundError:
            # Released between our create attempt and now
            return True
        age = time.time() - st.st_mtime
        if age < self.stale_after:
            return False

        # Rename first so only one waiter wins the stale file. If the inode
        # changed, a live holder re-created the lock in between: put it back.
        grave = self.lock_path.with_name(f"{self.lock_path.name}.stale.{os.getpid()}.{secrets.token_hex(6)}")
        try:
            os.rename(self.lock_path, grave)
        except FileNotFoundError:
            return True
        try:
            if grave.stat().st_ino != st.st_ino:
                try:
                    os.link(grave, self.lock_path)
                except FileExistsError:
                    pass
                return False
        finally:
            grave.unlink(missing_ok=True)

        log.warning("counter.lock_reclaimed", path=str(self.lock_path), age_seconds=round(age, 3))
        return True

    def _unavailable(self, message: str, path: Path, e: OSError) -> CoordinationUnavailableError:
        log.warning("counter.io_failed", path=str(path), error=str(e))
        return CoordinationUnavailableError(message, path=str(path), error=str(e), store=self.name)

    def _owns_lock(self, handle: LockHandle) -> bool:
        try:
            content = self.lock_path.read_text(encoding="ascii")
        except (FileNotFoundError, UnicodeDecodeError):
            return False
        except OSError as e:
            raise self._unavailable("cannot read counter lock file", self.lock_path, e) from e
        return content.split(" ", 1)[0] == handle.token

    def _check_holder(self, handle: LockHandle) -> None:
        self._check_handle(handle)
        if not self._owns_lock(handle):
            raise LockNotHeldError("counter lock was lost or reclaimed", token=handle.token, path=str(self.lock_path))

    def read(self, handle: LockHandle) -> int:
        self._check_holder(handle)
        try:
            raw = self.counter_path.read_bytes()
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise self._unavailable("cannot read counter file", self.counter_path, e) from e
        return parse_counter(raw, str(self.counter_path))

    def write(self, handle: LockHandle, value: int) -> None:
        self._check_holder(handle)
        if value < 0:
            raise ValueError("counter cannot be negative")
        try:
            _fsync_write(self.counter_path, str(value).encode("ascii"))
        except OSError as e:
            # The rename never happened, so the stored value is unchanged.
            raise self._unavailable("cannot write counter file", self.counter_path, e) from e

    def release(self, handle: LockHandle) -> None:
        if handle.released:
            return
        handle.released = True
        try:
            if not self._owns_lock(handle):
                log.warning("counter.lock_lost", path=str(self.lock_path), token=handle.token)
                return
            self.lock_path.unlink(missing_ok=True)
        except (CoordinationUnavailableError, OSError) as e:
            # Left for stale reclaim; must not mask an error raised while the lock was held.
            log.warning("counter.lock_release_failed", path=str(self.lock_path), error=str(e))

    def current(self) -> int | None:
        try:
            raw = self.counter_path.read_bytes()
        except FileNotFoundError:
            return 0
        except OSError:
            return None
        return parse_counter(raw, str(self.counter_path))

    async def health_check(self) -> bool:
        directory = self.counter_path.parent
        return directory.is_dir() and os.access(directory, os.W_OK)
