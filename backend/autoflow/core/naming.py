# autoflow/core/naming.py
import re
import unicodedata


def generate_workflow_name(prompt: str) -> str:
    """First five words longer than three characters, title-cased."""
    words = [w for w in prompt.split() if len(w) > 3][:5]
    words = [w[:1].upper() + w[1:].lower() for w in words]
    return " ".join(words + ["Workflow"])


def _ascii(text: str) -> str:
    return unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")


def file_stem(name: str) -> str:
    """
    Filesystem- and header-safe stem: ASCII letters, digits, ``.``, ``-`` and
    ``_`` only, so it can go into a ZIP entry or a Content-Disposition header.
    """
    stem = re.sub(r"[^A-Za-z0-9.-]+", "_", _ascii(name)).strip("._")
    return stem or "workflow"


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", _ascii(text).lower()).strip("-")
    return slug[:40] or "workflow"
