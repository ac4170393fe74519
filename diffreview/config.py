from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .model import VALID_VIEW_MODES, VIEW_INLINE

DEFAULT_CONFIG_NAME = ".diffreview.toml"


@dataclass(frozen=True)
class ReviewConfig:
    view_mode: str = VIEW_INLINE
    ignore_whitespace: bool = False
    default_base: str = "HEAD"
    max_lines_per_chunk: int = 400
    comments_path: Path | None = None


def _coerce_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise RuntimeError(f"config key '{key}' must be true or false")


def review_config_from_dict(data: dict[str, Any], *, base_dir: Path | None = None) -> ReviewConfig:
    review = data.get("review") or {}
    if not isinstance(review, dict):
        raise RuntimeError("config section [review] must be a table")

    view_mode = str(review.get("view_mode") or VIEW_INLINE).strip().lower()
    if view_mode not in VALID_VIEW_MODES:
        raise RuntimeError(f"config view_mode must be one of {sorted(VALID_VIEW_MODES)}, got '{view_mode}'")

    ignore_whitespace = _coerce_bool(review.get("ignore_whitespace", False), "ignore_whitespace")
    default_base = str(review.get("default_base") or "HEAD").strip()

    try:
        max_lines = int(review.get("max_lines_per_chunk", 400))
    except (TypeError, ValueError) as error:
        raise RuntimeError("config max_lines_per_chunk must be an integer") from error
    if max_lines < 1:
        raise RuntimeError("config max_lines_per_chunk must be >= 1")

    comments_path: Path | None = None
    raw_comments = review.get("comments")
    if raw_comments:
        comments_path = Path(str(raw_comments))
        if not comments_path.is_absolute() and base_dir is not None:
            comments_path = base_dir / comments_path

    return ReviewConfig(
        view_mode=view_mode,
        ignore_whitespace=ignore_whitespace,
        default_base=default_base,
        max_lines_per_chunk=max_lines,
        comments_path=comments_path,
    )


def load_review_config(path: Path) -> ReviewConfig:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise RuntimeError(f"File not found: {path}") from error
    except tomllib.TOMLDecodeError as error:
        raise RuntimeError(f"Invalid TOML in {path}: {error}") from error
    return review_config_from_dict(data, base_dir=path.parent)


def resolve_review_config(explicit: Path | None, repo: Path) -> ReviewConfig:
    if explicit is not None:
        return load_review_config(explicit)
    candidate = repo / DEFAULT_CONFIG_NAME
    if candidate.is_file():
        return load_review_config(candidate)
    return ReviewConfig()
