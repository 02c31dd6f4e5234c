"""Tests for shader build manifests."""

from __future__ import annotations

import hashlib

from sdfkit import __version__, ops
from sdfkit.codegen import generate
from sdfkit.manifest import build_manifest, formula_digest


def _files(tmp_path):
    script = tmp_path / "scene.sdf.py"
    script.write_text("sphere(1)\n", encoding="utf-8")
    output = tmp_path / "scene.wgsl"
    output.write_text("fn scene_sdf(p: vec3<f32>) -> f32 { return 0.0; }\n", encoding="utf-8")
    return script, output


class TestBuildManifest:
    def test_required_fields(self, library, tmp_path):
        script, output = _files(tmp_path)
        manifest = build_manifest(input_path=script, output_path=output, library=library)
        assert manifest["manifest_version"] == 1
        assert manifest["tool"]["name"] == "sdfkit"
        assert manifest["tool"]["version"] == __version__
        assert "timestamp" in manifest
        assert "tree" not in manifest
        assert "command_args" not in manifest

    def test_file_digests(self, library, tmp_path):
        script, output = _files(tmp_path)
        manifest = build_manifest(input_path=script, output_path=output, library=library)
        assert manifest["input"]["sha256"] == hashlib.sha256(script.read_bytes()).hexdigest()
        assert manifest["output"]["sha256"] == hashlib.sha256(output.read_bytes()).hexdigest()

    def test_formula_section(self, library, tmp_path):
        script, output = _files(tmp_path)
        manifest = build_manifest(input_path=script, output_path=output, library=library)
        assert manifest["formulas"] == {
            "count": len(library.names),
            "sha256": formula_digest(library),
        }

    def test_tree_and_args(self, library, tmp_path):
        script, output = _files(tmp_path)
        s = ops.sphere(1.0)
        manifest = build_manifest(
            input_path=script,
            output_path=output,
            library=library,
            tree=ops.union(s, s.translate(1, 0, 0)),
            command_args=["shader", "scene.sdf.py"],
        )
        assert manifest["tree"] == {"root": "Union", "nodes": 3}
        assert manifest["command_args"] == ["shader", "scene.sdf.py"]


class TestFormulaDigest:
    def test_stable(self, library):
        assert formula_digest(library) == formula_digest(library)

    def test_differs_between_libraries(self, library, formula_dir):
        assert formula_digest(generate(formula_dir).library) != formula_digest(library)
