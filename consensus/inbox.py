"""Inbox folder scanning, frontmatter parsing, and archive logic."""

import shutil
from datetime import datetime
from pathlib import Path

import frontmatter


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    """Create inbox and archive directories if they don't exist."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return all .md files in inbox_dir, oldest first by mtime."""
    return sorted(inbox_dir.glob("*.md"), key=lambda p: p.stat().st_mtime)


def parse_file(file_path: Path) -> tuple[str, str | None]:
    """Parse a query file with optional YAML frontmatter.

    Returns:
        (query, mode) where mode is the frontmatter ``mode`` value, or None
        when the file has no frontmatter or does not set it.
    """
    post = frontmatter.load(str(file_path))
    mode = post.metadata.get("mode")
    return post.content.strip(), str(mode) if mode else None


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move file to archive_dir with a timestamp prefix, "FAILED_" first on failure."""
    timestamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{timestamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    return dest
