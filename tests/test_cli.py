"""Tests for CLI entry point."""

import json

import numpy as np
from click.testing import CliRunner

from sdfkit import __version__, cli
from sdfkit.cli import main
from sdfkit.codegen import ARTIFACT_NAMES, install_artifacts

SPHERE = "sphere(0.5)\n"
ON_GROUND = "body = sphere(0.5).translate(0, 0.5, 0)\nunion(body, ground_plane())\n"


class TestCLI:
    def test_version_flag(self):
        runner = CliRunner()
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_check_ok(self, write_script):
        runner = CliRunner()
        result = runner.invoke(main, ["check", str(write_script(SPHERE))])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "OK"

    def test_check_syntax_error(self, write_script):
        runner = CliRunner()
        result = runner.invoke(main, ["check", str(write_script("for i in range(3):\n"))])
        assert result.exit_code != 0
        assert "Error: line" in result.output

    def test_check_does_not_evaluate(self, write_script):
        runner = CliRunner()
        result = runner.invoke(main, ["check", str(write_script("sphere(-1)\n"))])
        assert result.exit_code == 0, result.output

    def test_missing_file(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(main, ["check", str(tmp_path / "missing.sdf.py")])
        assert result.exit_code != 0


class TestShaderCommand:
    def test_stdout(self, write_script):
        runner = CliRunner()
        result = runner.invoke(main, ["shader", str(write_script(SPHERE))])
        assert result.exit_code == 0, result.output
        assert "let d0 = sd_sphere(p, 0.5);" in result.output
        assert "@fragment" in result.output

    def test_fragment_only(self, write_script):
        runner = CliRunner()
        result = runner.invoke(main, ["shader", str(write_script(SPHERE)), "--fragment-only"])
        assert result.exit_code == 0, result.output
        assert "@fragment" not in result.output
        assert "fn sd_sphere(" in result.output
        assert result.output.rstrip().endswith("return d0;\n}")

    def test_output_file(self, write_script, tmp_path):
        runner = CliRunner()
        out = tmp_path / "scene.wgsl"
        result = runner.invoke(main, ["shader", str(write_script(SPHERE)), "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert "Wrote shader" in result.output
        assert "fn scene_sdf(" in out.read_text(encoding="utf-8")

    def test_manifest(self, write_script, tmp_path):
        runner = CliRunner()
        out = tmp_path / "scene.wgsl"
        manifest_path = tmp_path / "scene.manifest.json"
        result = runner.invoke(
            main,
            [
                "shader",
                str(write_script(SPHERE)),
                "-o",
                str(out),
                "--emit-manifest",
                str(manifest_path),
            ],
        )
        assert result.exit_code == 0, result.output
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
        assert manifest["tool"]["name"] == "sdfkit"
        assert manifest["output"]["path"] == str(out)
        assert manifest["tree"] == {"root": "Sphere", "nodes": 1}

    def test_manifest_write_failure_is_reported(self, write_script, tmp_path):
        runner = CliRunner()
        out = tmp_path / "scene.wgsl"
        unwritable = tmp_path / "missing-dir" / "scene.manifest.json"
        result = runner.invoke(
            main,
            ["shader", str(write_script(SPHERE)), "-o", str(out), "--emit-manifest", str(unwritable)],
        )
        assert result.exit_code == 1
        assert "Cannot write manifest to" in result.output
        assert isinstance(result.exception, SystemExit)

    def test_manifest_requires_output(self, write_script, tmp_path):
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["shader", str(write_script(SPHERE)), "--emit-manifest", str(tmp_path / "m.json")],
        )
        assert result.exit_code != 0
        assert "--emit-manifest requires --output" in result.output

    def test_runtime_error(self, write_script):
        runner = CliRunner()
        result = runner.invoke(main, ["shader", str(write_script("x = 1\nsphere(-x)\n"))])
        assert result.exit_code != 0
        assert "line 2: radius must be >= 0" in result.output

    def test_warn_as_error(self, write_script):
        runner = CliRunner()
        result = runner.invoke(
            main, ["shader", str(write_script(ON_GROUND)), "--warn-as-error", "W02"]
        )
        assert result.exit_code != 0
        assert "[W02]" in result.output

    def test_suppress_warning(self, write_script):
        runner = CliRunner()
        result = runner.invoke(
            main, ["shader", str(write_script(ON_GROUND)), "--suppress-warning", "W02"]
        )
        assert result.exit_code == 0, result.output

    def test_unknown_warning_code(self, write_script):
        runner = CliRunner()
        result = runner.invoke(
            main, ["shader", str(write_script(SPHERE)), "--warn-as-error", "W99"]
        )
        assert result.exit_code != 0
        assert "Unknown warning code" in result.output


class TestQueryCommands:
    def test_eval(self, write_script):
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["eval", str(write_script(SPHERE)), "-p", "0", "0", "0", "-p", "1", "0", "0"],
        )
        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == ["(0, 0, 0) -0.500000", "(1, 0, 0) 0.500000"]

    def test_eval_requires_point(self, write_script):
        runner = CliRunner()
        result = runner.invoke(main, ["eval", str(write_script(SPHERE))])
        assert result.exit_code != 0

    def test_bounds(self, write_script):
        runner = CliRunner()
        result = runner.invoke(main, ["bounds", str(write_script("cube(2).translate(1, 0, 0)\n"))])
        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == [
            "min: (0, -1, -1)",
            "max: (2, 1, 1)",
            "size: (2, 2, 2)",
        ]

    def test_tree(self, write_script):
        runner = CliRunner()
        result = runner.invoke(main, ["tree", str(write_script("sphere(1).translate(1, 0, 0)\n"))])
        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == ["Translate(offset=(1, 0, 0))", "  Sphere(radius=1)"]

    def test_sample(self, write_script, tmp_path):
        runner = CliRunner()
        out = tmp_path / "grid.npy"
        result = runner.invoke(
            main, ["sample", str(write_script(SPHERE)), "-o", str(out), "--resolution", "8"]
        )
        assert result.exit_code == 0, result.output
        assert "8^3 samples" in result.output
        grid = np.load(out)
        assert grid.shape == (8, 8, 8)
        assert grid.dtype == np.float32
        assert grid.min() < 0.0 < grid.max()

    def test_sample_rejects_tiny_resolution(self, write_script, tmp_path):
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["sample", str(write_script(SPHERE)), "-o", str(tmp_path / "g.npy"), "--resolution", "1"],
        )
        assert result.exit_code != 0


class TestFormulaCommands:
    def test_codegen(self, tmp_path):
        runner = CliRunner()
        out_dir = tmp_path / "generated"
        result = runner.invoke(main, ["codegen", "--out", str(out_dir)])
        assert result.exit_code == 0, result.output
        for name in ARTIFACT_NAMES.values():
            assert (out_dir / name).exists()

    def test_codegen_custom_formulas(self, formula_dir, tmp_path):
        runner = CliRunner()
        out_dir = tmp_path / "generated"
        result = runner.invoke(
            main, ["codegen", "--formulas", str(formula_dir), "--out", str(out_dir)]
        )
        assert result.exit_code == 0, result.output
        wgsl = (out_dir / ARTIFACT_NAMES["wgsl"]).read_text(encoding="utf-8")
        assert "fn sd_sphere(" in wgsl
        assert "fn op_union(" not in wgsl

    def test_codegen_bad_formulas(self, tmp_path):
        runner = CliRunner()
        bad = tmp_path / "bad"
        bad.mkdir()
        (bad / "broken.yaml").write_text("formulas: [\n", encoding="utf-8")
        result = runner.invoke(main, ["codegen", "--formulas", str(bad), "--out", str(tmp_path)])
        assert result.exit_code != 0
        assert "Error" in result.output

    def test_codegen_requires_a_destination(self):
        runner = CliRunner()
        result = runner.invoke(main, ["codegen"])
        assert result.exit_code != 0
        assert "pass --out and/or --package" in result.output

    def test_codegen_package_installs_native_and_wgsl(self, tmp_path, monkeypatch):
        native_path = tmp_path / "formulas_generated.py"
        wgsl_path = tmp_path / "formulas.wgsl"

        def install_to_tmp(build):
            return install_artifacts(build, native_path=native_path, wgsl_path=wgsl_path)

        monkeypatch.setattr(cli, "install_artifacts", install_to_tmp)
        runner = CliRunner()
        result = runner.invoke(main, ["codegen", "--package"])
        assert result.exit_code == 0, result.output
        assert "packaged python:" in result.output
        assert "def sd_sphere(p, r):" in native_path.read_text(encoding="utf-8")
        assert "fn sd_sphere(" in wgsl_path.read_text(encoding="utf-8")

    def test_formulas_docs(self):
        runner = CliRunner()
        result = runner.invoke(main, ["formulas"])
        assert result.exit_code == 0, result.output
        assert "## `sd_sphere`" in result.output
