from __future__ import annotations

# Submission intake: Moodle download layout -> per-student workspace.
#
#   <root>/<8-char id> <name>_assignsubmission_file_/*.zip
#   -> <root>/workspace/<id>/sources/...   (extracted)
#   -> <root>/workspace/<id>/compile/...   (javac output, written later)

import logging
import os
import re
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from ..domain import SourceFile
from ..exceptions import InvalidArchive, SetupError
from ..settings import SETTINGS


logger = logging.getLogger(__name__)

SUBMISSION_DIR_RE = re.compile(r"^.{8} .*_assignsubmission_file_$")
SOURCES_DIR = "sources"
COMPILE_DIR = "compile"

_UTF8_FLAG = 0x800


@dataclass(frozen=True)
class ZipLimits:
    max_files: int
    max_total_bytes: int
    max_single_file_bytes: int


def default_zip_limits() -> ZipLimits:
    return ZipLimits(
        max_files=SETTINGS.unzip_max_entries,
        max_total_bytes=SETTINGS.unzip_max_total_bytes,
        max_single_file_bytes=SETTINGS.unzip_max_file_bytes,
    )


def parse_submission_dir_name(name: str) -> tuple[str, str] | None:
    """Return (student id, display name) for a Moodle submission directory."""

    if not SUBMISSION_DIR_RE.match(name):
        return None
    student_id = name[:8]
    display_name = name[9:].split("_", 1)[0]
    return student_id, display_name


def _member_name(info: zipfile.ZipInfo, name_encoding: str) -> str:
    # zipfile decodes names without the UTF-8 flag as cp437; archives made on
    # Japanese Windows are really Shift_JIS.
    if info.flag_bits & _UTF8_FLAG:
        return info.filename
    try:
        return info.filename.encode("cp437").decode(name_encoding)
    except (UnicodeEncodeError, UnicodeDecodeError):
        return info.filename


def _is_symlink(info: zipfile.ZipInfo) -> bool:
    mode = (info.external_attr >> 16) & 0xFFFF
    return (mode & 0o170000) == 0o120000


def _skip_member(path: PurePosixPath, info: zipfile.ZipInfo) -> bool:
    if path.parts and path.parts[0] == "__MACOSX":
        return True
    return not info.is_dir() and path.name.endswith(".class")


def _plan_members(zf: zipfile.ZipFile, *, limits: ZipLimits, name_encoding: str) -> list[tuple[zipfile.ZipInfo, PurePosixPath]]:
    # Pre-extract validation to prevent zip-slip and bound resource usage.
    infos = zf.infolist()
    if len(infos) > limits.max_files:
        raise InvalidArchive("too_many_files")
    planned: list[tuple[zipfile.ZipInfo, PurePosixPath]] = []
    total = 0
    for info in infos:
        name = _member_name(info, name_encoding).replace("\\", "/")
        if not name:
            continue
        path = PurePosixPath(name)
        if path.is_absolute() or ".." in path.parts:
            raise InvalidArchive("zip_slip")
        if _skip_member(path, info):
            continue
        if _is_symlink(info):
            raise InvalidArchive("symlink_not_allowed")
        if info.file_size > limits.max_single_file_bytes:
            raise InvalidArchive("file_too_large")
        total += int(info.file_size or 0)
        if total > limits.max_total_bytes:
            raise InvalidArchive("zip_too_large")
        planned.append((info, path))
    return planned


def _copy_member(zf: zipfile.ZipFile, info: zipfile.ZipInfo, dst: Path, *, limit: int) -> int:
    written = 0
    with zf.open(info) as src, dst.open("wb") as out:
        while True:
            chunk = src.read(1024 * 1024)
            if not chunk:
                break
            written += len(chunk)
            # Header sizes can lie; enforce on the actual stream as well.
            if written > limit:
                raise InvalidArchive("file_too_large")
            out.write(chunk)
    return written


def _move_into_place(*, staging: Path, dest_dir: Path, dirs: list[PurePosixPath], members: list[PurePosixPath]) -> list[Path]:
    # Several archives may share dest_dir, so merge member by member.
    for rel in dirs:
        dest_dir.joinpath(*rel.parts).mkdir(parents=True, exist_ok=True)
    moved: list[Path] = []
    for rel in members:
        dst = dest_dir.joinpath(*rel.parts)
        dst.parent.mkdir(parents=True, exist_ok=True)
        os.replace(staging.joinpath(*rel.parts), dst)
        moved.append(dst)
    return moved


def extract_zip(zip_path: Path, dest_dir: Path, *, limits: ZipLimits | None = None, name_encoding: str | None = None) -> list[Path]:
    """Extract a submission archive into `dest_dir` and return the written files.

    Strategy: extract to a staging dir -> enforce limits -> move into place.
    A rejected archive leaves nothing behind in `dest_dir`.
    """

    limits = limits or default_zip_limits()
    name_encoding = name_encoding or SETTINGS.zip_name_encoding
    if not zip_path.exists():
        raise InvalidArchive("zip_not_found")
    try:
        zf = zipfile.ZipFile(zip_path)
    except zipfile.BadZipFile as exc:
        raise InvalidArchive("bad_zip") from exc

    with zf:
        planned = _plan_members(zf, limits=limits, name_encoding=name_encoding)
        dest_dir.mkdir(parents=True, exist_ok=True)
        # Staging next to dest_dir keeps os.replace on one filesystem.
        staging = Path(tempfile.mkdtemp(prefix=".extract-", dir=dest_dir.parent))
        try:
            dirs: list[PurePosixPath] = []
            members: list[PurePosixPath] = []
            total = 0
            for info, rel in planned:
                dst = staging.joinpath(*rel.parts)
                if info.is_dir():
                    dirs.append(rel)
                    continue
                dst.parent.mkdir(parents=True, exist_ok=True)
                total += _copy_member(zf, info, dst, limit=limits.max_single_file_bytes)
                if total > limits.max_total_bytes:
                    raise InvalidArchive("zip_too_large")
                members.append(rel)
            return _move_into_place(staging=staging, dest_dir=dest_dir, dirs=dirs, members=members)
        finally:
            shutil.rmtree(staging, ignore_errors=True)


def prepare_workspace(root: Path) -> Path:
    workspace = root / SETTINGS.workspace_dir_name
    try:
        workspace.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise SetupError(f"cannot create workspace directory {workspace}: {exc}") from exc
    return workspace


def list_submission_dirs(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    return sorted(p for p in root.iterdir() if p.is_dir() and parse_submission_dir_name(p.name) is not None)


def extract_submissions(root: Path, workspace: Path, *, limits: ZipLimits | None = None) -> dict[str, str]:
    """Unpack every student's archives; returns student id -> display name.

    A broken archive is logged and skipped; it never stops the other students.
    """

    names: dict[str, str] = {}
    for submission_dir in list_submission_dirs(root):
        parsed = parse_submission_dir_name(submission_dir.name)
        assert parsed is not None
        student_id, display_name = parsed
        names[student_id] = display_name
        dest = workspace / student_id / SOURCES_DIR
        dest.mkdir(parents=True, exist_ok=True)
        for zip_path in sorted(submission_dir.iterdir()):
            if not zip_path.is_file() or not zip_path.name.lower().endswith("zip"):
                continue
            try:
                extract_zip(zip_path, dest, limits=limits)
            except InvalidArchive as exc:
                logger.warning("skipping archive %s: %s", zip_path, exc)
            except OSError as exc:
                logger.warning("failed to extract %s: %s", zip_path, exc)
    return names


def discover_sources(workspace: Path, *, suffix: str | None = None) -> list[SourceFile]:
    suffix = suffix or SETTINGS.source_suffix
    sources: list[SourceFile] = []
    if not workspace.is_dir():
        return sources
    for student_root in sorted(p for p in workspace.iterdir() if p.is_dir()):
        base = student_root / SOURCES_DIR
        if not base.is_dir():
            continue
        for path in sorted(base.rglob(f"*{suffix}")):
            if path.is_file():
                sources.append(SourceFile(student_id=student_root.name, path=path, base=base, student_root=student_root))
    return sources


def compile_dst_dir(source: SourceFile, *, keep_original_directory: bool = True) -> Path:
    root = source.student_root / COMPILE_DIR
    if not keep_original_directory:
        return root
    return root.joinpath(*source.path.parent.relative_to(source.base).parts)


def clean_compile_output(workspace: Path) -> None:
    # Stale .class files from an earlier run would mask compile errors.
    for student_root in workspace.iterdir() if workspace.is_dir() else []:
        target = student_root / COMPILE_DIR
        if target.is_dir():
            shutil.rmtree(target, ignore_errors=True)
