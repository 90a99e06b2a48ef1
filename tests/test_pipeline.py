# BladeForge: Geometric Algebra Code Generator
# Copyright (C) 2026 Eunkyum Kim <nemonanconcode@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
#
# This project is fully open-source, including for commercial use.
# We believe Geometric Algebra is the future of AI, and we want
# the industry to build upon this "unbending" paradigm.

"""Tests for the batch pipeline, the request reader and the settings."""

import importlib.resources
import json
import logging
import os
import re

import pytest
from omegaconf import OmegaConf

from backends import RustBackend
from codegen.pipeline import CodegenPipeline
from codegen.request import load_request, parse_type
from core.algebra import build
from core.config import CodegenConfig, default_lane_width, next_power_of_two
from core.errors import InvalidSignature, LaneOverflow, NonConvergent, UnknownOperator
from core.types import TypeSignature, descriptor

CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "conf", "config.yaml")


@pytest.fixture
def pga_3d():
    return build([0, 1, 1, 1])


@pytest.fixture
def pga_types(pga_3d):
    return {
        "Plane": TypeSignature.grades(pga_3d, 1, name="Plane"),
        "Line": TypeSignature.grades(pga_3d, 2, name="Line"),
        "Point": TypeSignature.grades(pga_3d, 3, name="Point"),
        "Motor": TypeSignature.grades(pga_3d, 0, 2, 4, name="Motor"),
        "Rotor": TypeSignature.of((0, 6, 10, 12), name="Rotor"),
    }


def batch(types):
    return [
        descriptor("geometric_product", types["Motor"], types["Motor"]),
        descriptor("wedge", types["Plane"], types["Plane"], result=types["Line"]),
        descriptor("sandwich", types["Motor"], types["Point"]),
        descriptor("reverse", types["Motor"]),
        descriptor("squared_magnitude", types["Motor"]),
    ]


class TestBatch:

    def test_results_in_request_order(self, pga_3d, pga_types):
        descriptors = batch(pga_types)
        pipeline = CodegenPipeline(pga_3d, CodegenConfig(lane_widths={"glsl": 4}),
                                   pga_types.values())
        report = pipeline.run(descriptors)

        assert report.ok
        assert [r.descriptor for r in report.results] == descriptors
        assert [r.symbol for r in report.results] == [
            "motor_motor_geometric_product",
            "plane_plane_wedge",
            "motor_point_sandwich",
            "motor_reverse",
            "motor_squared_magnitude",
        ]
        assert report.lane_widths == {"rust": 8, "glsl": 4}
        for result in report.results:
            assert set(result.sources) == {"rust", "glsl"}
            assert result.legalized["rust"].lane_width == 8
            assert result.legalized["glsl"].lane_width == 4
            assert len(result.graph) <= result.compiled_nodes
        assert report.results[2].result.name == "Point"
        assert "pub struct Motor {" in report.types["rust"]
        assert report.types["glsl"].count("struct Motor {") == 1

    def test_shared_layout_across_operations(self, pga_3d, pga_types):
        # Plane alone fits 4 lanes; inside the batch the width is set by Motor
        plane = pga_types["Plane"]
        d = descriptor("reverse", plane)
        pipeline = CodegenPipeline(pga_3d, CodegenConfig(backends=("rust",)), pga_types.values())
        report = pipeline.run(batch(pga_types) + [d])
        reverse = report.results[-1].legalized["rust"]
        assert reverse.lane_width == 8
        assert reverse.operand_layouts[0].groups == ((1, 2, 4, 8, None, None, None, None),)
        assert reverse.result.name == "Plane"

        alone, diagnostics = pipeline.run_operation(d)
        assert not diagnostics
        assert alone.legalized["rust"].lane_width == 4

    def test_inferred_result_named_after_type(self, pga_3d, pga_types):
        rotor = pga_types["Rotor"]
        pipeline = CodegenPipeline(pga_3d, CodegenConfig(), pga_types.values())
        report = pipeline.run([descriptor("geometric_product", rotor, rotor)])
        assert report.results[0].result.name == "Rotor"
        assert "-> Rotor {" in report.results[0].sources["rust"]

    def test_duplicate_symbols(self, pga_3d, pga_types):
        d = descriptor("reverse", pga_types["Line"])
        report = CodegenPipeline(pga_3d).run([d, d, d])
        assert [r.symbol for r in report.results] == ["line_reverse", "line_reverse_2", "line_reverse_3"]
        assert "pub fn line_reverse_2(a: Line)" in report.results[1].sources["rust"]

    def test_workers(self, pga_3d, pga_types):
        descriptors = batch(pga_types) * 2
        widths = {"glsl": 4}
        sequential = CodegenPipeline(pga_3d, CodegenConfig(workers=1, lane_widths=widths)).run(descriptors)
        parallel = CodegenPipeline(pga_3d, CodegenConfig(workers=4, lane_widths=widths)).run(descriptors)
        assert [r.sources for r in parallel.results] == [r.sources for r in sequential.results]
        assert [r.symbol for r in parallel.results] == [r.symbol for r in sequential.results]
        assert parallel.types == sequential.types


class TestDiagnostics:

    def test_failures_are_collected(self, pga_3d, pga_types):
        plane = pga_types["Plane"]
        descriptors = [
            descriptor("frobnicate", plane, plane),
            descriptor("wedge", plane),
            descriptor("dot", plane, plane),
        ]
        report = CodegenPipeline(pga_3d).run(descriptors)

        assert not report.ok
        assert len(report.results) == 3
        assert [d.kind for d in report.diagnostics] == ["UnknownOperator", "OperandArityMismatch"]
        assert isinstance(report.diagnostics[0], UnknownOperator)
        assert report.diagnostics[0].descriptor is descriptors[0]
        assert report.internal_errors == []
        assert report.results[0].graph is None
        assert report.results[1].sources == {}
        assert set(report.results[2].sources) == {"rust", "glsl"}

    def test_lane_overflow_only_fails_its_backend(self, pga_3d):
        full = TypeSignature.full(pga_3d, "Multivector")
        d = descriptor("geometric_product", full, full)
        report = CodegenPipeline(pga_3d).run([d])

        assert len(report.diagnostics) == 1
        error = report.diagnostics[0]
        assert isinstance(error, LaneOverflow)
        assert error.backend == "glsl"
        assert error.descriptor is d
        assert set(report.results[0].sources) == {"rust"}
        assert report.lane_widths["rust"] == 16

    def test_explicit_width_splits_instead(self, pga_3d):
        full = TypeSignature.full(pga_3d, "Multivector")
        config = CodegenConfig(lane_widths={"glsl": 4})
        report = CodegenPipeline(pga_3d, config).run([descriptor("geometric_product", full, full)])

        assert report.ok
        glsl = report.results[0].legalized["glsl"]
        assert len(glsl.groups) == 4
        assert "vec4 g3;" in report.types["glsl"]

    def test_non_convergent_is_internal(self, pga_3d, pga_types, caplog):
        motor = pga_types["Motor"]
        pipeline = CodegenPipeline(pga_3d, CodegenConfig(rewrite_ceiling=1))
        with caplog.at_level(logging.ERROR, logger="bladeforge"):
            report = pipeline.run([descriptor("geometric_product", motor, motor)])

        assert len(report.internal_errors) == 1
        assert isinstance(report.internal_errors[0], NonConvergent)
        assert report.manifest()["diagnostics"][0]["internal"] is True
        assert any("[internal]" in record.getMessage() for record in caplog.records)

    def test_debug_lines_name_the_operation(self, pga_3d, pga_types, caplog):
        full = TypeSignature.full(pga_3d, "Multivector")
        pipeline = CodegenPipeline(pga_3d)
        with caplog.at_level(logging.DEBUG, logger="bladeforge"):
            pipeline.run([descriptor("geometric_product", full, full)])

        messages = [record.getMessage() for record in caplog.records]
        assert any(m.startswith("[multivector_multivector_geometric_product@rust] ")
                   for m in messages)
        assert "[multivector_multivector_geometric_product@glsl] skipped: LaneOverflow" in messages


class TestArtifacts:

    def test_write(self, pga_3d, pga_types, tmp_path):
        pipeline = CodegenPipeline(pga_3d, CodegenConfig(lane_widths={"glsl": 4}), pga_types.values())
        report = pipeline.run(batch(pga_types))
        written = pipeline.write(report, str(tmp_path))

        assert len(written) == 2 * 5 + 2 + 1 + 1
        assert (tmp_path / "rust" / "simd.rs").read_text() == RustBackend().lane_support()
        assert not (tmp_path / "glsl" / "simd.glsl").exists()
        rust = (tmp_path / "rust" / "motor_reverse.rs").read_text()
        assert rust.startswith("use crate::simd::*;\nuse crate::types::*;\n\n")
        assert "pub fn motor_reverse(a: Motor) -> Motor {" in rust
        assert (tmp_path / "glsl" / "types.glsl").read_text().startswith("struct ")

        manifest = json.loads((tmp_path / "manifest.json").read_text())
        assert manifest["algebra"] == {
            "signature": [0, 1, 1, 1],
            "generators": 4,
            "fingerprint": pga_3d.fingerprint(),
        }
        assert manifest["backends"]["glsl"] == {"lane_width": 4, "types": "glsl/types.glsl"}
        assert manifest["backends"]["rust"] == {
            "lane_width": 8, "types": "rust/types.rs", "support": "rust/simd.rs",
        }
        entry = manifest["operations"][1]
        assert entry["symbol"] == "plane_plane_wedge"
        assert entry["kind"] == "wedge"
        assert entry["operands"][0] == {"name": "Plane", "blades": ["e0", "e1", "e2", "e3"]}
        assert entry["result"]["name"] == "Line"
        assert entry["backends"]["rust"] == {"file": "rust/plane_plane_wedge.rs", "lane_width": 8}
        assert manifest["diagnostics"] == []

    def test_failed_operations_have_no_files(self, pga_3d, tmp_path):
        full = TypeSignature.full(pga_3d, "Multivector")
        pipeline = CodegenPipeline(pga_3d)
        report = pipeline.run([descriptor("geometric_product", full, full)])
        pipeline.write(report, str(tmp_path))

        assert (tmp_path / "rust" / "multivector_multivector_geometric_product.rs").exists()
        assert not (tmp_path / "glsl" / "multivector_multivector_geometric_product.glsl").exists()
        manifest = json.loads((tmp_path / "manifest.json").read_text())
        assert list(manifest["operations"][0]["backends"]) == ["rust"]
        assert manifest["diagnostics"][0]["kind"] == "LaneOverflow"
        assert manifest["diagnostics"][0]["backend"] == "glsl"


class TestRequest:

    def test_shipped_config(self, tmp_path):
        cfg = OmegaConf.load(CONFIG_PATH)
        config = CodegenConfig.from_cfg(cfg.codegen)
        config.progress = False
        request = load_request(cfg, config.max_generators)

        assert request.table.signature == (0, 1, 1, 1)
        assert list(request.types) == ["Scalar", "Plane", "Line", "Point", "Motor", "Rotor"]
        assert request.types["Rotor"].blades == (0, 6, 10, 12)
        assert len(request.descriptors) == len(cfg.operations)

        pipeline = CodegenPipeline(request.table, config, request.types.values())
        report = pipeline.run(request.descriptors)
        assert report.ok, [str(d) for d in report.diagnostics]
        assert report.lane_widths == {"rust": 8, "glsl": 4}
        assert report.results[5].result.name == "Scalar"
        pipeline.write(report, str(tmp_path))
        assert (tmp_path / "manifest.json").exists()

        simd = (tmp_path / "rust" / "simd.rs").read_text()
        for path in (tmp_path / "rust").glob("*.rs"):
            source = path.read_text()
            for width in set(re.findall(r"Simd32x(\d+)", source)):
                assert f"pub struct Simd32x{width}(" in simd, (path.name, width)
            for arguments in re.findall(r"swizzle!\(([^)]*)\)", source):
                arity = len(arguments.split(",")) - 1
                assert f"$crate::simd::Simd32x{arity}([" in simd, (path.name, arity)

    def test_config_ships_with_the_package(self):
        resource = importlib.resources.files("conf").joinpath("config.yaml")
        assert resource.is_file()
        assert OmegaConf.create(resource.read_text()).algebra.generators == [0, 1, 1, 1]

    def test_inline_types(self):
        cfg = OmegaConf.create({
            "algebra": {"generators": [1, 1, 1]},
            "types": {
                "Even": {"grades": [0, 2]},
                "Spinor": {"grades": [0], "blades": ["e01"]},
            },
            "operations": [
                {"kind": "gp", "operands": ["Even", ["e0", "e2"]], "name": "apply"},
                {"kind": "add", "operands": ["Spinor", "Spinor"], "result": "Even"},
            ],
        })
        request = load_request(cfg)
        assert request.types["Even"].blades == (0, 3, 5, 6)
        assert request.types["Spinor"].blades == (0, 3)
        first, second = request.descriptors
        assert first.operands[1].blades == (1, 4)
        assert first.symbol() == "apply"
        assert second.result.name == "Even"

    def test_duplicate_blade_sets(self):
        cfg = OmegaConf.create({
            "algebra": {"generators": [1, 1]},
            "types": {"A": ["1", "e01"], "B": {"grades": [0, 2]}},
        })
        with pytest.raises(InvalidSignature):
            load_request(cfg)

    def test_unknown_type(self):
        cfg = OmegaConf.create({
            "algebra": {"generators": [1, 1]},
            "operations": [{"kind": "reverse", "operands": ["Nope"]}],
        })
        request = load_request(cfg)
        assert request.descriptors == []
        (error,) = request.diagnostics
        assert isinstance(error, InvalidSignature)
        assert error.context["type"] == "Nope"
        assert error.context["operation"] == 0

    def test_broken_entry_does_not_hide_the_others(self, tmp_path):
        cfg = OmegaConf.create({
            "algebra": {"generators": [1, 1, 1]},
            "types": {"Vector": {"grades": [1]}},
            "operations": [
                {"kind": "wedge", "operands": ["Vector", "Vector"]},
                {"kind": "reverse", "operands": ["Typo"]},
                {"operands": ["Vector"]},
            ],
        })
        request = load_request(cfg)
        assert [d.symbol() for d in request.descriptors] == ["vector_vector_wedge"]
        assert [type(e) for e in request.diagnostics] == [InvalidSignature, UnknownOperator]
        assert request.diagnostics[1].context["operation"] == 2

        config = CodegenConfig(backends=("glsl",), progress=False)
        pipeline = CodegenPipeline(request.table, config, request.types.values())
        report = pipeline.run(request.descriptors, request.diagnostics)
        assert not report.ok
        assert len(report.results) == 1
        assert "glsl" in report.results[0].sources
        assert report.diagnostics[:2] == request.diagnostics

        pipeline.write(report, str(tmp_path))
        assert (tmp_path / "glsl" / "vector_vector_wedge.glsl").exists()
        manifest = json.loads((tmp_path / "manifest.json").read_text())
        assert [d["kind"] for d in manifest["diagnostics"]] == ["InvalidSignature", "UnknownOperator"]
        assert manifest["diagnostics"][0]["operation"] is None

    def test_bad_signature(self):
        cfg = OmegaConf.create({"algebra": {"generators": [1, 2]}})
        with pytest.raises(InvalidSignature):
            load_request(cfg)

    def test_generator_cap(self):
        cfg = OmegaConf.create({"algebra": {"generators": [1, 1, 1]}})
        with pytest.raises(InvalidSignature):
            load_request(cfg, max_generators=2)

    def test_bad_type_spec(self):
        with pytest.raises(InvalidSignature):
            parse_type("e01", build([1, 1]), "Broken")


class TestConfig:

    def test_defaults(self):
        config = CodegenConfig.from_cfg(None)
        assert config.target_lane_width is None
        assert config.backends == ("rust", "glsl")
        assert config.rewrite_ceiling == 1_000_000

    def test_from_cfg(self):
        cfg = OmegaConf.create({
            "target_lane_width": None,
            "lane_widths": {"glsl": 2},
            "workers": 3,
            "backends": ["glsl"],
            "unrelated": 1,
        })
        config = CodegenConfig.from_cfg(cfg)
        assert config.lane_widths == {"glsl": 2}
        assert config.workers == 3
        assert config.backends == ("glsl",)
        assert config.lane_width_for("glsl", 8) == 2
        assert config.lane_width_for("rust", 8) == 8

    def test_global_width(self):
        config = CodegenConfig(target_lane_width=2, lane_widths={"glsl": 4})
        assert config.lane_width_for("rust", 8) == 2
        assert config.lane_width_for("glsl", 8) == 4

    def test_generator_clamp(self):
        assert CodegenConfig(max_generators=40).max_generators == 16

    @pytest.mark.parametrize("kwargs", [
        {"max_generators": 0},
        {"rewrite_ceiling": 0},
        {"target_lane_width": 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            CodegenConfig(**kwargs)

    def test_unknown_backend(self, pga_3d):
        with pytest.raises(ValueError):
            CodegenPipeline(pga_3d, CodegenConfig(backends=("hlsl",)))

    def test_widths(self, pga_3d):
        assert [next_power_of_two(v) for v in (0, 1, 2, 3, 5, 8, 9)] == [1, 1, 2, 4, 8, 8, 16]
        assert default_lane_width([TypeSignature.grades(pga_3d, 1), TypeSignature((0,))]) == 4
        assert default_lane_width([]) == 1
