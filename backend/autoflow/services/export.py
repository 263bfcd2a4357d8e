# autoflow/services/export.py
import io
import json
import zipfile
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

from autoflow.core.errors import PipelineError
from autoflow.core.naming import file_stem
from autoflow.models.state import Document
from autoflow.services.planner import import_order
from autoflow.services.sanitizer import sanitize

logger = logging.getLogger("export")


def export_document(doc: Document) -> str:
    return json.dumps(sanitize(doc).to_export(), indent=2, ensure_ascii=False)


def _node_count(artifact: Any) -> int:
    doc = artifact.document
    if isinstance(doc, Document):
        return len(doc.nodes)
    nodes = doc.get("nodes") if isinstance(doc, dict) else None
    return len(nodes) if isinstance(nodes, list) else 0


def build_manifest(artifacts: Sequence[Any], prompt: str, platform: str = "n8n") -> Dict[str, Any]:
    """
    ``artifacts`` are GeneratedArtifact values, or anything with the same
    name/kind/depends_on/document attributes (document may be a raw dict).
    """
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "platform": platform,
        "count": len(artifacts),
        "prompt": prompt,
        "import_order": import_order(list(artifacts)),
        "workflows": [
            {
                "name": a.name,
                "kind": a.kind,
                "nodeCount": _node_count(a),
                "dependsOn": list(a.depends_on),
            }
            for a in artifacts
        ],
    }


def render_readme(manifest: Dict[str, Any]) -> str:
    lines: List[str] = [
        "# Workflow Set Package",
        "",
        f"Generated: {manifest['generated_at']}",
        f"Platform: {manifest['platform']}",
        f"Total Workflows: {manifest['count']}",
        "",
        "## Prompt Used:",
        manifest["prompt"],
        "",
        "## Workflows Included:",
    ]
    for i, w in enumerate(manifest["workflows"], start=1):
        line = f"{i}. {w['name']} ({w['nodeCount']} nodes) - {w['kind']}"
        if w["dependsOn"]:
            line += f" (depends on: {', '.join(w['dependsOn'])})"
        lines.append(line)
    lines += [
        "",
        "## Import Instructions:",
        "1. Extract this ZIP file",
        f"2. Open {manifest['platform']}",
        "3. Go to Workflows > Import from File",
        "4. Import each .json file individually",
    ]
    if any(w["dependsOn"] for w in manifest["workflows"]):
        lines += [
            "",
            "Note: Some workflows have dependencies. Import orchestrator workflows first, then child workflows.",
            f"Suggested order: {' -> '.join(manifest['import_order'])}",
        ]
    return "\n".join(lines) + "\n"


def build_batch_package(
    artifacts: Sequence[Any],
    prompt: str,
    platform: str = "n8n",
) -> bytes:
    """
    ZIP with one JSON file per workflow plus manifest.json and README.txt.

    Each document is sanitized on the way out; one that cannot be is written
    as-is with a _WARNING suffix instead of being dropped.
    """
    manifest = build_manifest(artifacts, prompt, platform)
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for i, artifact in enumerate(artifacts, start=1):
            stem = f"{i}_{file_stem(artifact.name)}"
            source: Any = artifact.document
            try:
                payload = sanitize(source).to_export()
                zf.writestr(f"{stem}.json", json.dumps(payload, indent=2, ensure_ascii=False))
            except PipelineError as e:
                logger.error("Failed to sanitize workflow %s: %s", artifact.name, e)
                raw = source.to_export() if isinstance(source, Document) else source
                zf.writestr(f"{stem}_WARNING.json", json.dumps(raw, indent=2, ensure_ascii=False))
        zf.writestr("manifest.json", json.dumps(manifest, indent=2, ensure_ascii=False))
        zf.writestr("README.txt", render_readme(manifest))
    return buf.getvalue()
