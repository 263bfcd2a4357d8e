# tests/test_export.py
import io
import json
import zipfile
from types import SimpleNamespace

from autoflow.models.state import GeneratedArtifact
from autoflow.services.export import build_batch_package, build_manifest, export_document
from autoflow.services.sanitizer import sanitize

from conftest import make_document


def artifact(name, kind="child", depends_on=(), document=None):
    doc = sanitize(document or make_document(name))
    return GeneratedArtifact(
        correlation_id=f"workflow-{name}",
        name=name,
        document=doc,
        node_count=len(doc.nodes),
        kind=kind,
        depends_on=list(depends_on),
    )


def open_zip(data: bytes) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(data))


def test_export_document_is_pretty_json():
    text = export_document(sanitize(make_document("Solo")))
    assert json.loads(text)["name"] == "Solo"
    assert text.startswith("{\n  ")


def test_manifest_lists_dependencies_and_import_order():
    artifacts = [artifact("Child", depends_on=["Hub"]), artifact("Hub", kind="orchestrator")]
    manifest = build_manifest(artifacts, prompt="Build a hub", platform="n8n")
    assert manifest["count"] == 2
    assert manifest["import_order"] == ["Hub", "Child"]
    assert manifest["workflows"][0] == {"name": "Child", "kind": "child", "nodeCount": 2, "dependsOn": ["Hub"]}


def test_package_contains_one_file_per_workflow():
    artifacts = [artifact("Order Hub", kind="orchestrator"), artifact("Order Sync", depends_on=["Order Hub"])]
    with open_zip(build_batch_package(artifacts, prompt="Order system")) as zf:
        names = sorted(zf.namelist())
        assert names == ["1_Order_Hub.json", "2_Order_Sync.json", "README.txt", "manifest.json"]

        doc = json.loads(zf.read("2_Order_Sync.json"))
        assert doc["name"] == "Order Sync"
        assert doc["settings"] == {"executionOrder": "v1"}

        readme = zf.read("README.txt").decode()
        assert "2. Order Sync (2 nodes) - child (depends on: Order Hub)" in readme
        assert "Suggested order: Order Hub -> Order Sync" in readme


def test_unsanitizable_document_is_written_with_warning_suffix():
    broken = SimpleNamespace(
        name="Broken Flow",
        kind="utility",
        depends_on=[],
        document={"name": "Broken Flow", "nodes": [{"name": "NoType"}]},
    )
    good = SimpleNamespace(name="Good Flow", kind="child", depends_on=[], document=make_document("Good Flow"))

    with open_zip(build_batch_package([good, broken], prompt="p")) as zf:
        assert "1_Good_Flow.json" in zf.namelist()
        assert "2_Broken_Flow_WARNING.json" in zf.namelist()
        assert json.loads(zf.read("2_Broken_Flow_WARNING.json")) == broken.document
        manifest = json.loads(zf.read("manifest.json"))
        assert manifest["workflows"][1]["nodeCount"] == 1


def test_entry_names_never_nest_or_leave_ascii():
    artifacts = [artifact("Orders/EU", kind="orchestrator"), artifact("Café ☕ Sync", depends_on=["Orders/EU"])]
    with open_zip(build_batch_package(artifacts, prompt="Order system")) as zf:
        names = sorted(zf.namelist())
    assert names == ["1_Orders_EU.json", "2_Cafe_Sync.json", "README.txt", "manifest.json"]
