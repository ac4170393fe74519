from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .diff_model import build_model
from .model import DiffModel, FileSummary

TARGET_WORKING = "working"
TARGET_STAGED = "staged"
TARGET_UNCOMMITTED = "."
PSEUDO_TARGETS = {TARGET_WORKING, TARGET_STAGED, TARGET_UNCOMMITTED}

COMMITISH_PATTERNS = [
    re.compile(r"^[a-f0-9]{4,40}$", re.IGNORECASE),
    re.compile(r"^HEAD(~\d+)?$"),
    re.compile(r"^[A-Za-z0-9_\-/.~^]+$"),
]


@dataclass(frozen=True)
class DiffRequest:
    target: str
    base: str | None
    args: tuple[str, ...]


@dataclass(frozen=True)
class DiffResult:
    label: str
    model: DiffModel


def run_git(repo: Path, args: list[str]) -> str:
    process = subprocess.run(
        ["git", "-C", str(repo), *args],
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=False,
    )
    if process.returncode != 0:
        message = process.stderr.strip() or process.stdout.strip()
        raise RuntimeError(f"git {' '.join(args)} failed: {message}")
    return process.stdout


def validate_commitish(value: str) -> bool:
    if not isinstance(value, str):
        return False
    trimmed = value.strip()
    if not trimmed:
        return False
    return any(pattern.match(trimmed) for pattern in COMMITISH_PATTERNS)


def resolve_diff_request(
    target: str,
    base: str | None = None,
    *,
    default_base: str = "HEAD",
    ignore_whitespace: bool = False,
) -> DiffRequest:
    target = target.strip()
    if target not in PSEUDO_TARGETS and not validate_commitish(target):
        raise ValueError(f"Invalid target commit-ish: {target!r}")
    if base is not None:
        base = base.strip()
        if base in {TARGET_WORKING, TARGET_STAGED}:
            raise ValueError(f"'{base}' can only be used as the target, not as the base")
        if not validate_commitish(base):
            raise ValueError(f"Invalid base commit-ish: {base!r}")

    if target == TARGET_WORKING:
        args: list[str] = []
        base = None
    elif target == TARGET_STAGED:
        base = base or default_base
        args = ["--cached", base]
    elif target == TARGET_UNCOMMITTED:
        base = base or default_base
        args = [base]
    else:
        base = base or f"{target}^"
        if base == target:
            raise ValueError(f"Cannot compare {target!r} with itself")
        args = [base, target]

    if ignore_whitespace:
        args.append("-w")
    return DiffRequest(target=target, base=base, args=tuple(args))


def parse_numstat(text: str) -> list[FileSummary]:
    summaries: list[FileSummary] = []
    for raw_line in text.splitlines():
        if not raw_line.strip():
            continue
        parts = raw_line.split("\t", 2)
        if len(parts) < 3:
            continue
        insertions, deletions = parts[0], parts[1]
        if insertions == "-" and deletions == "-":
            summaries.append(FileSummary(binary=True))
            continue
        try:
            summaries.append(FileSummary(insertions=int(insertions), deletions=int(deletions)))
        except ValueError:
            summaries.append(FileSummary())
    return summaries


def short_hash(value: str) -> str:
    return value.strip()[:7]


def describe_request(repo: Path, request: DiffRequest) -> str:
    if request.target == TARGET_WORKING:
        return "Working Directory (unstaged changes)"
    base_hash = short_hash(run_git(repo, ["rev-parse", "--verify", str(request.base)]))
    if request.target == TARGET_STAGED:
        return f"{base_hash} vs Staging Area (staged changes)"
    if request.target == TARGET_UNCOMMITTED:
        return f"{base_hash} vs Working Directory (all uncommitted changes)"
    target_hash = short_hash(run_git(repo, ["rev-parse", "--verify", request.target]))
    return f"{base_hash}..{target_hash}"


def load_diff(
    repo: Path,
    target: str,
    base: str | None = None,
    *,
    default_base: str = "HEAD",
    ignore_whitespace: bool = False,
) -> DiffResult:
    request = resolve_diff_request(
        target,
        base,
        default_base=default_base,
        ignore_whitespace=ignore_whitespace,
    )
    label = describe_request(repo, request)
    numstat = run_git(repo, ["diff", "--numstat", "-M", *request.args])
    diff_text = run_git(repo, ["diff", "--no-color", "-M", *request.args])
    return DiffResult(label=label, model=build_model(diff_text, parse_numstat(numstat)))
