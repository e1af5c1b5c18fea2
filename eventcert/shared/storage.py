import os
import re
import tempfile
import time


def ensure_dir(path: str) -> None:
    """Create directory if missing (mkdir -p equivalent)."""
    os.makedirs(path, exist_ok=True)


def write_atomic(path: str, data, mode: str = "wb") -> None:
    """Write data to a temporary file then atomically rename to target path."""
    dir_path = os.path.dirname(path) or "."
    ensure_dir(dir_path)
    fd, tmp_path = tempfile.mkstemp(dir=dir_path)
    try:
        with os.fdopen(fd, mode) as f:
            f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def public_path(site_root: str, rel_path: str | None) -> str | None:
    """Resolve a public URL path like ``/certificates/x.png`` under site_root."""
    raw = (rel_path or "").strip()
    if not raw:
        return None
    root = os.path.realpath(site_root)
    resolved = os.path.realpath(os.path.join(root, raw.lstrip("/")))
    if resolved == root or resolved.startswith(f"{root}{os.sep}"):
        return resolved
    return None


def _filename_part(value: str | None, default: str) -> str:
    part = re.sub(r"\s+", "_", (value or "").strip())
    return re.sub(r"[^A-Za-z0-9_\-]+", "", part) or default


def certificate_filename(name: str | None, event_slug: str | None, position: int) -> str:
    stem = _filename_part(name, "participant")
    slug = _filename_part(event_slug, "event")
    millis = int(time.time() * 1000)
    return f"cert_{stem}_{slug}_{millis}_{position}.pdf"
