#!/usr/bin/env python3
"""
parzip - Parallel ZIP packer and unpacker

Packs a file or directory tree into a single ZIP archive and unpacks an
archive back into a directory tree, spreading the expensive per-entry work
across workers while keeping the archive layout deterministic.

Performance Features:
- Worker pool for per-entry stat/header preparation
- Reorder buffer committing entries to the archive strictly in walk order
- Permit-bounded concurrent restoration during unpack
- Streaming copies in both directions (bounded memory per entry)
"""

import argparse
import asyncio
import contextlib
import difflib
import logging
import os
import shutil
import stat
import struct
import sys
import threading
import time
import traceback
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Iterator, List, Optional, Union

import pathspec


async def run_in_thread(func: Callable[..., Any], *args, **kwargs) -> Any:
    """Run a blocking function in the default thread pool."""
    return await asyncio.to_thread(func, *args, **kwargs)


try:
    from rich.console import Console
    from rich.progress import (
        Progress,
        SpinnerColumn,
        TextColumn,
        BarColumn,
        TimeElapsedColumn,
        MofNCompleteColumn,
    )

    HAS_RICH = True
except ImportError:
    HAS_RICH = False
    Console = None
    Progress = None

try:
    from tqdm import tqdm

    HAS_TQDM = True
except ImportError:
    HAS_TQDM = False
    tqdm = None


__version__ = "1.0.0"
__author__ = "parzip Project"
__license__ = "MIT"

# Earliest timestamp representable in a ZIP header
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
# Latest one (7-bit year offset, 2-second resolution)
ZIP_MAX = (2107, 12, 31, 23, 59, 58)

# MS-DOS attribute bits stored in the low byte of external_attr
DOS_READONLY = 0x01
DOS_DIRECTORY = 0x10


class ParzipError(Exception):
    """Base exception for parzip errors"""

    pass


class TraversalError(ParzipError):
    """A source path could not be read while walking the tree"""

    pass


class PrepareError(ParzipError):
    """A single source entry could not be stat'ed or described"""

    pass


class WriteError(ParzipError):
    """Writing to the archive failed"""

    pass


class PathEscapeError(ParzipError):
    """An entry name would place a file outside the destination directory"""

    pass


class RestoreError(ParzipError):
    """Restoring an entry from the archive failed"""

    pass


@dataclass(frozen=True)
class SourcePath:
    """A path found by the walk, tagged with its position in walk order"""

    path: Path
    is_dir: bool
    seq: int


@dataclass
class PreparedEntry:
    """Result of preparing one SourcePath for the archive.

    header is None with no error for the implicit root directory, which has
    no entry of its own. content is None for directory entries.
    """

    seq: int
    header: Optional[zipfile.ZipInfo] = None
    content: Optional[Callable[[BinaryIO], None]] = None
    error: Optional[Exception] = None


@dataclass(frozen=True)
class ArchiveLayout:
    """How source paths map to entry names for a single pack call"""

    source: Path
    root_name: Optional[str] = None

    @classmethod
    def for_source(cls, source: Path, is_dir: bool) -> "ArchiveLayout":
        return cls(source=source, root_name=source.name if is_dir else None)

    def entry_name(self, path: Path) -> str:
        """Name of path inside the archive, with forward slashes.

        Returns an empty string for the root of a directory archive.
        """
        if self.root_name is None:
            return path.name
        if path == self.source:
            return ""
        return path.relative_to(self.source.parent).as_posix()


class FirstError:
    """Single-slot holder for the first error reported by any worker"""

    def __init__(self):
        self._lock = threading.Lock()
        self._error: Optional[BaseException] = None

    def set(self, error: BaseException) -> bool:
        with self._lock:
            if self._error is not None:
                return False
            self._error = error
            return True

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def raise_if_set(self) -> None:
        if self._error is not None:
            raise self._error


class OrderedWriter:
    """Commits prepared entries to a ZipFile in sequence-number order.

    Entries may be handed to accept() in any order. Early arrivals wait in a
    holding map until every lower sequence number has been released, so the
    archive is always written in walk order no matter which worker finishes
    first.
    """

    def __init__(self, zf: zipfile.ZipFile, total: int):
        self._zf = zf
        self.total = total
        self._next = 0
        self._pending: Dict[int, PreparedEntry] = {}
        self.committed = 0

    @property
    def finished(self) -> bool:
        return self.committed == self.total

    def accept(self, entry: PreparedEntry) -> List[PreparedEntry]:
        """Take one entry and return the contiguous run now ready to commit"""
        if entry.seq < self._next or entry.seq in self._pending:
            raise ValueError(f"Entry {entry.seq} was already accepted")
        if not 0 <= entry.seq < self.total:
            raise ValueError(f"Entry {entry.seq} is outside 0..{self.total - 1}")

        self._pending[entry.seq] = entry
        ready = []
        while self._next in self._pending:
            ready.append(self._pending.pop(self._next))
            self._next += 1
        return ready

    def commit(self, entry: PreparedEntry) -> None:
        """Write one entry to the archive, or raise the error it carries"""
        if entry.error is not None:
            raise entry.error

        if entry.header is not None:
            try:
                if entry.content is None:
                    self._zf.writestr(entry.header, b"")
                else:
                    with self._zf.open(entry.header, "w") as sink:
                        entry.content(sink)
            except (OSError, ValueError, struct.error) as e:
                raise WriteError(
                    f"Cannot write entry {entry.header.filename}: {e}"
                ) from e

        self.committed += 1

    @property
    def pending_count(self) -> int:
        """Entries that arrived early and are waiting for a gap to fill"""
        return len(self._pending)


def _raise_traversal_error(error: OSError) -> None:
    raise TraversalError(f"Cannot read {error.filename}: {error}") from error


def walk_paths(
    root: Union[str, Path], exclude: Optional[pathspec.PathSpec] = None
) -> List[SourcePath]:
    """Walk root and return every path below it, root included, in sorted order.

    Paths are sorted by their full string form, which makes two walks of an
    unchanged tree identical. Symlinked directories are listed but not
    entered.

    Raises:
        TraversalError: If the root or any directory below it cannot be read
    """
    root = Path(os.path.abspath(root))
    try:
        root_is_dir = stat.S_ISDIR(os.stat(root).st_mode)
    except OSError as e:
        raise TraversalError(f"Cannot read {root}: {e}") from e

    found = [(str(root), root_is_dir)]
    if root_is_dir:
        for dirpath, dirnames, filenames in os.walk(
            root, onerror=_raise_traversal_error
        ):
            if exclude is not None:
                rel_dir = Path(dirpath).relative_to(root)
                dirnames[:] = [
                    d
                    for d in dirnames
                    if not exclude.match_file((rel_dir / d).as_posix() + "/")
                ]
                filenames = [
                    f
                    for f in filenames
                    if not exclude.match_file((rel_dir / f).as_posix())
                ]
            for name in dirnames:
                found.append((os.path.join(dirpath, name), True))
            for name in filenames:
                found.append((os.path.join(dirpath, name), False))

    found.sort(key=lambda item: item[0])
    return [
        SourcePath(path=Path(p), is_dir=is_dir, seq=seq)
        for seq, (p, is_dir) in enumerate(found)
    ]


def ensure_inside(base_dir: Union[str, Path], target: Union[str, Path]) -> None:
    """Raise PathEscapeError unless target is base_dir or lexically below it"""
    clean_base = os.path.normpath(os.path.abspath(base_dir))
    clean_target = os.path.normpath(os.path.abspath(target))

    if clean_target == clean_base:
        return
    if not clean_target.startswith(clean_base.rstrip(os.sep) + os.sep):
        raise PathEscapeError(
            f"Path traversal attempt detected: '{target}' "
            f"would escape output directory '{clean_base}'"
        )


def safe_destination(base_dir: Union[str, Path], entry_name: str) -> str:
    """
    Map an untrusted archive entry name to a path inside base_dir.

    Backslashes are treated as separators and leading slashes are dropped,
    so absolute names end up inside base_dir rather than being rejected.

    Args:
        base_dir: The trusted destination directory
        entry_name: The entry name as stored in the archive

    Returns:
        Normalized absolute path within base_dir

    Raises:
        PathEscapeError: If the name contains NUL bytes or would escape base_dir
    """
    if "\x00" in entry_name:
        raise PathEscapeError(
            f"Path contains null bytes (potential injection): {entry_name!r}"
        )

    normalized = entry_name.replace("\\", "/").lstrip("/")
    base = os.path.abspath(base_dir)
    target = os.path.normpath(os.path.join(base, *normalized.split("/")))
    ensure_inside(base, target)
    return target


def entry_mode(info: zipfile.ZipInfo) -> int:
    """Permission bits recorded for an archive entry"""
    mode = (info.external_attr >> 16) & 0o777
    if mode:
        return mode
    return 0o444 if info.external_attr & DOS_READONLY else 0o644


def entry_mtime(info: zipfile.ZipInfo) -> float:
    """Recorded modification time of an entry as a POSIX timestamp"""
    return time.mktime(info.date_time + (0, 0, -1))


def _create_destination(path: str, mode: int) -> BinaryIO:
    """Create or truncate path for writing with the given permission bits"""
    flags = os.O_CREAT | os.O_WRONLY | os.O_TRUNC | getattr(os, "O_BINARY", 0)
    fd = os.open(path, flags, mode)
    return os.fdopen(fd, "wb")


def default_archive_path(source: Union[str, Path]) -> Path:
    """Archive name used when none is given: <source base name>.zip"""
    return Path(Path(os.path.abspath(source)).name + ".zip")


def default_extract_dir(archive: Union[str, Path]) -> Path:
    """Directory used when none is given: the archive name without extensions"""
    base = Path(archive).name
    if base.lower().endswith(".zip"):
        base = base[: -len(".zip")]
    stem, ext = os.path.splitext(base)
    if ext:
        base = stem
    return Path(base)


class ParallelZip:
    """Parallel ZIP packer/unpacker with ordered, reproducible output"""

    def __init__(self, config: Optional[Dict] = None):
        self.config = config or {}

        self.console = Console() if HAS_RICH else None

        self.logger = self._setup_logging()

        max_workers_config = self.config.get("max_workers", os.cpu_count() or 4)
        if not max_workers_config or max_workers_config <= 0:
            max_workers_config = os.cpu_count() or 4
        self.max_workers = min(max_workers_config, 32)

        self.buffer_size = self.config.get("buffer_size", 64 * 1024)  # 64KB
        if self.buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {self.buffer_size}")

        self.exclude_patterns = list(self.config.get("exclude_patterns", []))
        self._exclude_spec = (
            pathspec.PathSpec.from_lines("gitwildmatch", self.exclude_patterns)
            if self.exclude_patterns
            else None
        )

        self.source_date_epoch = self._parse_source_date_epoch(
            self.config.get(
                "source_date_epoch", os.environ.get("SOURCE_DATE_EPOCH")
            )
        )

        self.dry_run = self.config.get("dry_run", False)
        self.verbose = self.config.get("verbose", False)

        # TTY detection for progress bars (disable in CI/CD and pipes)
        self.is_tty = sys.stdout.isatty()

        self.stats = {
            "entries_written": 0,
            "files_restored": 0,
            "bytes_processed": 0,
        }

    def _setup_logging(self) -> logging.Logger:
        """Setup structured logging"""
        level = logging.DEBUG if self.config.get("verbose") else logging.INFO

        logger = logging.getLogger("parzip")
        logger.setLevel(level)

        # Avoid duplicate handlers
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                "%(asctime)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        return logger

    def _parse_source_date_epoch(self, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        try:
            epoch = int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid source_date_epoch: {value!r}")
        if epoch < 0:
            raise ValueError(f"source_date_epoch cannot be negative: {epoch}")
        return epoch

    def _format_size(self, size: int) -> str:
        """Format size in human-readable format"""
        if size < 0:
            return "0B"

        for unit in ["B", "KB", "MB", "GB", "TB"]:
            if size < 1024.0:
                return f"{size:.1f}{unit}"
            size /= 1024.0
        return f"{size:.1f}PB"

    def _zip_timestamp(self, mtime: float) -> tuple:
        if self.source_date_epoch is not None:
            date_time = time.gmtime(self.source_date_epoch)[:6]
        else:
            date_time = time.localtime(mtime)[:6]
        return min(max(date_time, ZIP_EPOCH), ZIP_MAX)

    @contextlib.contextmanager
    def _progress(
        self, total: int, description: str, enabled: bool
    ) -> Iterator[Callable[[], None]]:
        """Yield an advance() callback backed by rich or tqdm when available"""
        use_rich_progress = enabled and HAS_RICH and self.console and self.is_tty
        use_tqdm_progress = (
            enabled and HAS_TQDM and tqdm and self.is_tty and not use_rich_progress
        )

        if use_rich_progress:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=self.console,
            ) as progress_bar:
                task = progress_bar.add_task(description, total=total)
                yield lambda: progress_bar.update(task, advance=1)
        elif use_tqdm_progress:
            pbar = tqdm(total=total, desc=description, unit="entries")
            try:
                yield lambda: pbar.update(1)
            finally:
                pbar.close()
        else:
            yield lambda: None

    def prepare_entry(self, source: SourcePath, layout: ArchiveLayout) -> PreparedEntry:
        """Stat one source path and describe its archive entry.

        Failures are returned inside the entry instead of raised, so every
        sequence number produces exactly one result.
        """
        try:
            st = os.stat(source.path)
            name = layout.entry_name(source.path)
            # ZIP names are stored as UTF-8; undecodable bytes fail here
            name.encode("utf-8")

            if stat.S_ISDIR(st.st_mode):
                if not name:
                    return PreparedEntry(seq=source.seq)
                header = zipfile.ZipInfo(
                    name + "/", date_time=self._zip_timestamp(st.st_mtime)
                )
                header.external_attr = (
                    (stat.S_IFDIR | stat.S_IMODE(st.st_mode)) << 16
                ) | DOS_DIRECTORY
                header.compress_type = zipfile.ZIP_STORED
                return PreparedEntry(seq=source.seq, header=header)

            header = zipfile.ZipInfo(name, date_time=self._zip_timestamp(st.st_mtime))
            header.external_attr = (stat.S_IFREG | stat.S_IMODE(st.st_mode)) << 16
            header.compress_type = zipfile.ZIP_DEFLATED
            header.file_size = st.st_size

            return PreparedEntry(
                seq=source.seq,
                header=header,
                content=self._content_reader(source.path),
            )

        except (OSError, ValueError) as e:
            return PreparedEntry(
                seq=source.seq,
                error=PrepareError(f"Cannot prepare {source.path}: {e}"),
            )

    def _content_reader(self, path: Path) -> Callable[[BinaryIO], None]:
        buffer_size = self.buffer_size

        def write_to(sink: BinaryIO) -> None:
            with open(path, "rb") as src:
                shutil.copyfileobj(src, sink, buffer_size)

        return write_to

    async def pack(
        self,
        source: Union[str, Path],
        archive: Union[str, Path],
        progress: bool = False,
    ) -> int:
        """
        Pack source (a file or directory) into a new ZIP archive.

        Entries are prepared by max_workers concurrent workers and committed
        by a single writer in sorted walk order. On failure the archive file
        is left as written so far and must not be trusted.

        Returns:
            Number of entries committed (the implicit root counts as one)

        Raises:
            TraversalError, PrepareError, WriteError
        """
        source = Path(os.path.abspath(source))
        archive = Path(archive)

        sources = await run_in_thread(walk_paths, source, self._exclude_spec)
        layout = ArchiveLayout.for_source(source, sources[0].is_dir)
        self.logger.debug(f"Walked {len(sources)} paths under {source}")

        try:
            archive.parent.mkdir(parents=True, exist_ok=True)
            zf = zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED)
        except OSError as e:
            raise WriteError(f"Cannot create archive {archive}: {e}") from e

        work: asyncio.Queue = asyncio.Queue()
        for item in sources:
            work.put_nowait(item)
        results: asyncio.Queue = asyncio.Queue(maxsize=2 * self.max_workers)

        async def preparer() -> None:
            while True:
                try:
                    item = work.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    entry = await run_in_thread(self.prepare_entry, item, layout)
                except Exception as e:
                    # Every sequence number must reach the writer
                    entry = PreparedEntry(
                        seq=item.seq,
                        error=PrepareError(f"Cannot prepare {item.path}: {e}"),
                    )
                    entry.error.__cause__ = e
                await results.put(entry)

        workers = [asyncio.create_task(preparer()) for _ in range(self.max_workers)]
        writer = OrderedWriter(zf, len(sources))

        try:
            with self._progress(len(sources), "Packing", progress) as advance:
                while not writer.finished:
                    entry = await results.get()
                    ready_entries = writer.accept(entry)
                    if self.verbose and not ready_entries:
                        self.logger.debug(
                            f"Holding entry {entry.seq} "
                            f"({writer.pending_count} waiting for earlier entries)"
                        )
                    for ready in ready_entries:
                        await run_in_thread(writer.commit, ready)
                        if ready.header is not None:
                            self.stats["entries_written"] += 1
                            self.stats["bytes_processed"] += ready.header.file_size
                            if self.verbose:
                                self.logger.debug(f"Added {ready.header.filename}")
                        advance()
        except BaseException:
            # The central directory is still written for whatever made it in
            with contextlib.suppress(OSError, ValueError):
                zf.close()
            raise
        finally:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        try:
            await run_in_thread(zf.close)
        except OSError as e:
            raise WriteError(f"Cannot finalize archive {archive}: {e}") from e

        return writer.committed

    def _restore_entry(
        self, zf: zipfile.ZipFile, info: zipfile.ZipInfo, dest: str
    ) -> int:
        """Restore one file entry; returns the number of bytes written"""
        target = safe_destination(dest, info.filename)

        mode = entry_mode(info)
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with zf.open(info) as src:
                with _create_destination(target, mode) as dst:
                    shutil.copyfileobj(src, dst, self.buffer_size)
            os.chmod(target, mode)
        except (
            OSError,
            EOFError,
            RuntimeError,
            NotImplementedError,
            zipfile.BadZipFile,
            zlib.error,
        ) as e:
            raise RestoreError(f"Cannot restore {info.filename}: {e}") from e

        try:
            os.utime(target, (time.time(), entry_mtime(info)))
        except (OSError, OverflowError, ValueError) as e:
            self.logger.debug(f"Cannot restore modification time for {target}: {e}")

        return info.file_size

    async def unpack(
        self,
        archive: Union[str, Path],
        dest: Union[str, Path],
        progress: bool = False,
    ) -> int:
        """
        Unpack a ZIP archive into dest.

        Directories are created first, sequentially. File entries are then
        restored concurrently, at most max_workers at a time. Every worker
        finishes its own entry even after another one failed; the first
        failure is raised once all workers are done.

        Returns:
            Number of file entries restored

        Raises:
            PathEscapeError, RestoreError
        """
        archive = Path(archive)
        dest = os.path.abspath(dest)

        try:
            zf = await run_in_thread(zipfile.ZipFile, archive)
        except (OSError, zipfile.BadZipFile) as e:
            raise RestoreError(f"Cannot open archive {archive}: {e}") from e

        with zf:
            try:
                os.makedirs(dest, exist_ok=True)
                file_entries = []
                for info in zf.infolist():
                    if info.is_dir():
                        os.makedirs(safe_destination(dest, info.filename), exist_ok=True)
                    else:
                        file_entries.append(info)
            except OSError as e:
                raise RestoreError(f"Cannot create directory: {e}") from e

            permits = asyncio.Semaphore(self.max_workers)
            first_error = FirstError()
            restored = 0

            with self._progress(len(file_entries), "Unpacking", progress) as advance:

                async def restore(info: zipfile.ZipInfo) -> None:
                    nonlocal restored
                    async with permits:
                        try:
                            size = await run_in_thread(
                                self._restore_entry, zf, info, dest
                            )
                        except ParzipError as e:
                            first_error.set(e)
                            self.logger.debug(f"Failed {info.filename}: {e}")
                            return
                        except Exception as e:
                            # lzma and bz2 decoder errors land here
                            error = RestoreError(f"Cannot restore {info.filename}: {e}")
                            error.__cause__ = e
                            first_error.set(error)
                            self.logger.debug(f"Failed {info.filename}: {e}")
                            return

                    restored += 1
                    self.stats["files_restored"] += 1
                    self.stats["bytes_processed"] += size
                    if self.verbose:
                        self.logger.debug(f"Restored: {info.filename}")
                    advance()

                await asyncio.gather(*(restore(info) for info in file_entries))

        first_error.raise_if_set()
        return restored

    def _dry_run_pack(self, sources: List[SourcePath], layout: ArchiveLayout) -> bool:
        """List the entries a pack would write without creating the archive"""
        self.logger.info("DRY RUN - Entries that would be written:")

        total_size = 0
        entry_count = 0
        error_count = 0

        for item in sources:
            entry = self.prepare_entry(item, layout)
            if entry.error is not None:
                if HAS_RICH and self.console:
                    self.console.print(f"  [red]✗[/red] {item.path} ({entry.error})")
                else:
                    print(f"  ✗ {item.path} ({entry.error})")
                error_count += 1
                continue
            if entry.header is None:
                continue

            size = entry.header.file_size
            if HAS_RICH and self.console:
                self.console.print(
                    f"  [green]✓[/green] {entry.header.filename} ([blue]{self._format_size(size)}[/blue])"
                )
            else:
                print(f"  ✓ {entry.header.filename} ({self._format_size(size)})")
            total_size += size
            entry_count += 1

        if HAS_RICH and self.console:
            self.console.print("\n[bold]Summary:[/bold]")
            self.console.print(
                f"  Would write: [green]{entry_count}[/green] entries ([blue]{self._format_size(total_size)}[/blue])"
            )
            if error_count:
                self.console.print(f"  Unreadable: [red]{error_count}[/red] paths")
        else:
            print("\nSummary:")
            print(f"  Would write: {entry_count} entries ({self._format_size(total_size)})")
            if error_count:
                print(f"  Unreadable: {error_count} paths")

        return error_count == 0

    async def zip_files(
        self,
        source_path: Union[str, Path],
        output_path: Optional[Union[str, Path]] = None,
        progress: bool = True,
    ) -> bool:
        """Pack with validation, default naming, and summary logging"""
        try:
            source_path = Path(source_path)
            if not source_path.exists():
                raise ParzipError(f"Source path does not exist: {source_path}")

            if output_path is None:
                output_path = default_archive_path(source_path)
            output_path = Path(output_path).resolve()

            if self.dry_run:
                sources = await run_in_thread(
                    walk_paths, source_path, self._exclude_spec
                )
                layout = ArchiveLayout.for_source(
                    Path(os.path.abspath(source_path)), sources[0].is_dir
                )
                return self._dry_run_pack(sources, layout)

            start_time = time.time()
            self.stats = {"entries_written": 0, "files_restored": 0, "bytes_processed": 0}

            self.logger.info(f"Packing {source_path} into {output_path}")
            await self.pack(source_path, output_path, progress=progress)

            elapsed = time.time() - start_time
            self.logger.info(f"Successfully packed {self.stats['entries_written']} entries")
            self.logger.info(
                f"Total size: {self._format_size(self.stats['bytes_processed'])}"
            )
            self.logger.info(f"Processing time: {elapsed:.2f}s")
            self.logger.info(f"Archive: {output_path}")
            return True

        except Exception as e:
            self.logger.error(f"Failed to pack files: {e}")
            if self.verbose:
                self.logger.error(traceback.format_exc())
            return False

    async def unzip_files(
        self,
        archive_path: Union[str, Path],
        output_path: Optional[Union[str, Path]] = None,
        progress: bool = True,
    ) -> bool:
        """Unpack with validation, default naming, and summary logging"""
        try:
            archive_path = Path(archive_path)
            if not archive_path.exists():
                raise ParzipError(f"Archive not found: {archive_path}")
            if not archive_path.is_file():
                raise ParzipError(f"Archive path is not a file: {archive_path}")

            if output_path is None:
                output_path = default_extract_dir(archive_path)
            output_path = Path(output_path).resolve()

            start_time = time.time()
            self.stats = {"entries_written": 0, "files_restored": 0, "bytes_processed": 0}

            self.logger.info(f"Unpacking {archive_path} into {output_path}")
            await self.unpack(archive_path, output_path, progress=progress)

            elapsed = time.time() - start_time
            self.logger.info(f"Successfully restored {self.stats['files_restored']} files")
            self.logger.info(
                f"Total size: {self._format_size(self.stats['bytes_processed'])}"
            )
            self.logger.info(f"Processing time: {elapsed:.2f}s")
            self.logger.info(f"Output directory: {output_path}")
            return True

        except Exception as e:
            self.logger.error(f"Failed to unpack archive: {e}")
            if self.verbose:
                self.logger.error(traceback.format_exc())
            return False


def create_config_file(config_path: Path) -> bool:
    """Create a default configuration file"""
    default_config = """# parzip Configuration
# Uncomment and modify values as needed

# Number of concurrent workers (entry preparation and restoration)
# max_workers = 8

# Buffer size for streaming copies (in bytes)
# buffer_size = 65536

# Paths to leave out when packing (gitignore-style patterns)
# exclude_patterns = [
#     "*.pyc",
#     "__pycache__/",
#     ".git/"
# ]

# Fixed timestamp (seconds since epoch) for every entry, for reproducible archives
# source_date_epoch = 315532800

# verbose = false
"""

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            f.write(default_config)
        return True
    except (OSError, PermissionError) as e:
        print(f"Error creating config file: {e}")
        return False


def load_config_file(config_path: Path) -> Dict:
    """Load configuration from file with error handling"""
    if not config_path.exists():
        return {}

    config = {}
    line_num = 0
    try:
        with open(config_path, "r") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                if "=" in line:
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip().strip("\"'")

                    if value.lower() in ("true", "false"):
                        config[key] = value.lower() == "true"
                    elif value.isdigit():
                        config[key] = int(value)
                    elif value.startswith("[") and value.endswith("]"):
                        items = [
                            item.strip().strip("\"'") for item in value[1:-1].split(",")
                        ]
                        config[key] = [item for item in items if item]
                    else:
                        config[key] = value

    except (OSError, UnicodeDecodeError) as e:
        print(f"Warning: Error loading config file on line {line_num}: {e}")

    return config


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with comprehensive error handling"""
    parser = argparse.ArgumentParser(
        description="Parallel ZIP packer and unpacker with reproducible output",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Pack a directory into project.zip (entries are prefixed with "project/")
  %(prog)s zip ./project

  # Pack into an explicit archive path, skipping build output
  %(prog)s zip ./project out/project.zip --exclude "build/" --exclude "*.pyc"

  # Pack a single file
  %(prog)s zip ./notes.txt notes.zip

  # Unpack into ./project (named after the archive)
  %(prog)s unzip project.zip

  # Unpack into a chosen directory with 4 workers
  %(prog)s unzip project.zip /tmp/restored -j 4
        """,
    )

    parser.add_argument("operation", help="Operation to perform (zip or unzip)")
    parser.add_argument("input_path", help="Source file/directory, or archive to unpack")
    parser.add_argument(
        "output_path",
        nargs="?",
        default=None,
        help="Archive to create, or directory to unpack into (derived from input if omitted)",
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument(
        "-n", "--dry-run", action="store_true", help="Show what would be packed"
    )
    parser.add_argument(
        "-e", "--exclude", action="append", default=[],
        help="Gitignore-style pattern to leave out when packing. Can be used multiple times."
    )
    parser.add_argument(
        "-j", "--jobs", type=int, default=None, help="Worker count (default: CPU count)"
    )
    parser.add_argument(
        "--no-progress", action="store_true", help="Disable progress bars"
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path.home() / ".config" / "parzip" / "config",
        help="Configuration file path",
    )
    parser.add_argument(
        "--create-config", action="store_true", help="Create default config"
    )

    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    args = parser.parse_args(argv)

    # Fuzzy command matching for typos
    valid_operations = ["zip", "unzip"]
    if args.operation not in valid_operations:
        close_matches = difflib.get_close_matches(
            args.operation, valid_operations, n=1, cutoff=0.6
        )
        if close_matches:
            print(
                f"Unknown command '{args.operation}'. Did you mean '{close_matches[0]}'?",
                file=sys.stderr,
            )
        else:
            print(
                f"Unknown command '{args.operation}'. Valid commands: {', '.join(valid_operations)}",
                file=sys.stderr,
            )
        return 1

    try:
        if args.create_config:
            if create_config_file(args.config):
                print(f"Created default configuration file: {args.config}")
            else:
                print(f"Failed to create configuration file: {args.config}")
                return 1
            return 0

        config = load_config_file(args.config)

        # Command line arguments override the config file
        if args.jobs is not None:
            config["max_workers"] = args.jobs
        if args.exclude:
            config["exclude_patterns"] = list(config.get("exclude_patterns", [])) + args.exclude
        if args.verbose:
            config["verbose"] = True
        config["dry_run"] = args.dry_run

        progress = not args.no_progress
        zipper = ParallelZip(config)

        if args.operation == "zip":
            success = await zipper.zip_files(
                args.input_path, args.output_path, progress=progress
            )
        else:
            success = await zipper.unzip_files(
                args.input_path, args.output_path, progress=progress
            )

        return 0 if success else 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130
    except (ParzipError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cli_main():
    """Synchronous entry point for console scripts"""
    return asyncio.run(main())


if __name__ == "__main__":
    sys.exit(cli_main())
