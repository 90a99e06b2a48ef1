# BladeForge: Geometric Algebra Code Generator
# Copyright (C) 2026 Eunkyum Kim <nemonanconcode@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
#
# This project is fully open-source, including for commercial use.
# We believe Geometric Algebra is the future of AI, and we want
# the industry to build upon this "unbending" paradigm.

"""Tests for lowering operation descriptors into expression graphs."""

import pytest
import torch

from codegen.compiler import compile
from core.algebra import build
from core.errors import InvalidSignature, OperandArityMismatch, UnknownOperator
from core.evaluation import dense, evaluate_batch, random_inputs, reference_product
from core.graph import NodeKind
from core.types import OperatorKind, TypeSignature, descriptor


def terms_of(graph, blade):
    """``(coefficient, left blade, right blade)`` of each term of an output sum."""
    out = graph[graph.outputs[blade]]
    assert out.kind is NodeKind.ADD
    terms = []
    for child in out.children:
        node = graph[child]
        assert node.kind is NodeKind.MULTIPLY
        constant, product = (graph[c] for c in node.children)
        assert constant.kind is NodeKind.CONSTANT
        left, right = (graph[c] for c in product.children)
        terms.append((constant.value, left.value[1], right.value[1]))
    return terms


def dense_operand(inputs, slot, signature, dim):
    return dense({b: inputs[(slot, b)] for b in signature}, dim)


def reverse_dense(table, mv):
    signs = torch.tensor([table.reversion_sign(b) for b in table.blades], dtype=torch.long)
    return mv * signs


@pytest.fixture
def euclid_2d():
    return build([1, 1])


@pytest.fixture
def pga_2d():
    return build([0, 1, 1])


@pytest.fixture
def hyperbolic_3d():
    return build([-1, -1, -1])


class TestScenarios:

    def test_geometric_product_2d(self, euclid_2d):
        full = TypeSignature.full(euclid_2d, "Mv")
        graph = compile(euclid_2d, descriptor("geometric_product", full, full))

        assert list(graph.outputs) == [0, 1, 2, 3]
        for blade in graph.outputs:
            assert len(terms_of(graph, blade)) == 4
        # a*b scalar part: a0 b0 + a1 b1 + a2 b2 - a3 b3
        assert terms_of(graph, 0) == [(1, 0, 0), (1, 1, 1), (1, 2, 2), (-1, 3, 3)]
        # e01 part: a0 b3 + a1 b2 - a2 b1 + a3 b0
        assert terms_of(graph, 3) == [(1, 0, 3), (1, 1, 2), (-1, 2, 1), (1, 3, 0)]
        assert graph.result == full

    def test_geometric_product_matches_dense_reference(self, euclid_2d):
        full = TypeSignature.full(euclid_2d)
        graph = compile(euclid_2d, descriptor("geometric_product", full, full))
        inputs = random_inputs(graph.operands, batch=1000)
        A = dense_operand(inputs, 0, full, euclid_2d.dim)
        B = dense_operand(inputs, 1, full, euclid_2d.dim)
        expected = reference_product(euclid_2d, A, B)
        for blade, value in evaluate_batch(graph, inputs).items():
            assert torch.equal(value, expected[..., blade])

    def test_wedge_with_degenerate_generator(self, pga_2d):
        vector = TypeSignature.grades(pga_2d, 1, name="Vector")
        graph = compile(pga_2d, descriptor("wedge", vector, vector))

        assert list(graph.outputs) == [3, 5, 6]
        assert graph.result == TypeSignature.grades(pga_2d, 2)
        for blade in graph.outputs:
            terms = terms_of(graph, blade)
            assert len(terms) == 2
            for _, a, b in terms:
                assert a & b == 0
        # e0 ^ e0 never shows up
        assert all((1, 1) != (a, b) for blade in graph.outputs for _, a, b in terms_of(graph, blade))

    def test_sandwich_reflection_hyperbolic(self, hyperbolic_3d):
        table = hyperbolic_3d
        bivector = TypeSignature.grades(table, 2, name="Bivector")
        vector = TypeSignature.grades(table, 1, name="Vector")
        graph = compile(table, descriptor("sandwich", bivector, vector))

        assert graph.result == vector
        assert set(graph.outputs) <= set(vector)

        # Reversed copy of the bivector: every component scaled by -1
        reversed_inputs = set()
        for node in graph.nodes:
            if node.kind is NodeKind.MULTIPLY:
                constant, other = (graph[c] for c in node.children)
                if constant.kind is NodeKind.CONSTANT and other.kind is NodeKind.INPUT:
                    assert constant.value == -1
                    reversed_inputs.add(other.value)
        assert reversed_inputs == {(0, b) for b in bivector}

        inputs = random_inputs(graph.operands, batch=500)
        R = dense_operand(inputs, 0, bivector, table.dim)
        V = dense_operand(inputs, 1, vector, table.dim)
        expected = reference_product(table, reference_product(table, R, V), reverse_dense(table, R))
        values = evaluate_batch(graph, inputs)
        for blade in vector:
            assert torch.equal(values[blade], expected[..., blade])
        # The full product of a bivector sandwich of a vector is a pure vector
        for blade in table.blades:
            if blade not in vector:
                assert not expected[..., blade].any()


class TestOperators:

    def test_determinism(self, pga_2d):
        full = TypeSignature.full(pga_2d)
        d = descriptor("sandwich", full, TypeSignature.grades(pga_2d, 1))
        first, second = compile(pga_2d, d), compile(pga_2d, d)
        assert first == second
        assert first.nodes == second.nodes
        assert list(first.outputs.items()) == list(second.outputs.items())

    def test_aliases(self, euclid_2d):
        full = TypeSignature.full(euclid_2d)
        assert compile(euclid_2d, descriptor("gp", full, full)) == \
            compile(euclid_2d, descriptor(OperatorKind.GEOMETRIC_PRODUCT, full, full))

    def test_dot_plus_wedge_is_geometric_for_vectors(self):
        table = build([1, -1, 0])
        vector = TypeSignature.grades(table, 1)
        inputs = random_inputs((vector, vector), batch=200)
        gp, dot, wedge = (
            evaluate_batch(compile(table, descriptor(kind, vector, vector)), inputs)
            for kind in ("geometric_product", "dot", "wedge")
        )
        assert set(dot) == {0}
        assert set(dot).isdisjoint(wedge)
        for blade, value in gp.items():
            combined = dot.get(blade, torch.zeros_like(value)) + wedge.get(blade, torch.zeros_like(value))
            assert torch.equal(value, combined)

    @pytest.mark.parametrize("kind,grade", [
        ("left_contraction", 1),
        ("right_contraction", None),
        ("scalar_product", None),
    ])
    def test_contractions(self, kind, grade):
        table = build([1, 1, 1])
        vector = TypeSignature.grades(table, 1)
        bivector = TypeSignature.grades(table, 2)
        graph = compile(table, descriptor(kind, vector, bivector))
        if grade is None:
            assert graph.outputs == {}
            assert len(graph.result) == 0
        else:
            assert all(table.grade(b) == grade for b in graph.outputs)
            assert len(graph.outputs) == 3

    def test_regressive_with_pseudoscalar_scales(self, pga_2d):
        # (s I) v X = s X, whatever the metric
        pseudoscalar = TypeSignature((pga_2d.pseudoscalar,))
        full = TypeSignature.full(pga_2d)
        graph = compile(pga_2d, descriptor("regressive", pseudoscalar, full))
        inputs = random_inputs(graph.operands, batch=100)
        values = evaluate_batch(graph, inputs)
        assert set(values) == set(full)
        scale = inputs[(0, pga_2d.pseudoscalar)]
        for blade in full:
            assert torch.equal(values[blade], scale * inputs[(1, blade)])

    def test_dual(self, euclid_2d):
        full = TypeSignature.full(euclid_2d)
        graph = compile(euclid_2d, descriptor("dual", full))
        values = graph.evaluate({(0, b): b + 1 for b in full})
        # 1 -> e01, e0 -> e1, e1 -> -e0, e01 -> 1
        assert values == {0: 4, 1: -3, 2: 2, 3: 1}

    @pytest.mark.parametrize("kind,signs", [
        ("reverse", [1, 1, -1, -1]),
        ("grade_involution", [1, -1, 1, -1]),
        ("conjugate", [1, -1, -1, 1]),
        ("negate", [-1, -1, -1, -1]),
    ])
    def test_involutions(self, kind, signs):
        table = build([1, 1, 1])
        one_per_grade = TypeSignature((0, 1, 3, 7))
        graph = compile(table, descriptor(kind, one_per_grade))
        values = graph.evaluate({(0, b): 5 for b in one_per_grade})
        assert [values[b] for b in one_per_grade] == [5 * s for s in signs]

    def test_add_and_subtract(self, euclid_2d):
        left = TypeSignature((0, 1))
        right = TypeSignature((1, 3))
        assignment = {(0, 0): 2, (0, 1): 3, (1, 1): 7, (1, 3): 11}
        added = compile(euclid_2d, descriptor("add", left, right))
        assert added.evaluate(assignment) == {0: 2, 1: 10, 3: 11}
        subtracted = compile(euclid_2d, descriptor("subtract", left, right))
        assert subtracted.evaluate(assignment) == {0: 2, 1: -4, 3: -11}

    def test_squared_magnitude(self):
        table = build([1, 1, 1])
        bivector = TypeSignature.grades(table, 2)
        graph = compile(table, descriptor("squared_magnitude", bivector))
        assert graph.result == TypeSignature((0,))
        assert graph.evaluate({(0, 3): 1, (0, 5): 2, (0, 6): 3}) == {0: 14}

    def test_squared_magnitude_skips_degenerate(self, pga_2d):
        vector = TypeSignature.grades(pga_2d, 1)
        graph = compile(pga_2d, descriptor("squared_magnitude", vector))
        assert graph.evaluate({(0, 1): 9, (0, 2): 2, (0, 4): 3}) == {0: 13}


class TestConstantsAndConversions:

    def test_zero(self, pga_2d):
        motor = TypeSignature.grades(pga_2d, 0, 2, name="Motor")
        d = descriptor("zero", result=motor)
        graph = compile(pga_2d, d)
        assert graph.outputs == {}
        assert graph.result == motor
        assert d.symbol() == "motor_zero"

    def test_one(self, pga_2d):
        motor = TypeSignature.grades(pga_2d, 0, 2, name="Motor")
        graph = compile(pga_2d, descriptor("one", result=motor))
        assert graph.evaluate({}) == {0: 1}
        assert graph.result.name == "Motor"

    def test_constants_default_to_scalar(self, euclid_2d):
        graph = compile(euclid_2d, descriptor("one"))
        assert graph.result == TypeSignature((0,))
        assert graph.evaluate({}) == {0: 1}

    def test_one_needs_scalar_blade(self, euclid_2d):
        vector = TypeSignature((1, 2), "Vector")
        with pytest.raises(InvalidSignature) as info:
            compile(euclid_2d, descriptor("one", result=vector))
        assert info.value.context["type"] == "Vector"

    def test_into_projects(self, pga_2d):
        motor = TypeSignature.grades(pga_2d, 0, 2, name="Motor")
        rotor = TypeSignature((0, 6), name="Rotor")
        d = descriptor("into", motor, result=rotor)
        graph = compile(pga_2d, d)
        assignment = {(0, b): 10 + b for b in motor}
        assert graph.evaluate(assignment) == {0: 10, 6: 16}
        assert d.symbol() == "motor_into_rotor"

    def test_into_widens(self, euclid_2d):
        vector = TypeSignature((1, 2), "Vector")
        full = TypeSignature.full(euclid_2d, "Mv")
        graph = compile(euclid_2d, descriptor("convert", vector, result=full))
        assert list(graph.outputs) == [1, 2]
        assert graph.evaluate({(0, 1): 3, (0, 2): 4}) == {1: 3, 2: 4}

    def test_scale(self, pga_2d):
        motor = TypeSignature.grades(pga_2d, 0, 2, name="Motor")
        scalar = TypeSignature((0,), "Scalar")
        d = descriptor("scale", motor, scalar)
        graph = compile(pga_2d, d)
        assert graph.result == motor
        assignment = {(0, b): b + 1 for b in motor}
        assignment[(1, 0)] = -3
        assert graph.evaluate(assignment) == {b: -3 * (b + 1) for b in motor}
        assert d.symbol() == "motor_scalar_scale"

    def test_scale_needs_scalar_factor(self, euclid_2d):
        vector = TypeSignature((1, 2), "Vector")
        with pytest.raises(InvalidSignature) as info:
            compile(euclid_2d, descriptor("scale", vector, vector))
        assert info.value.context["type"] == "Vector"

    @pytest.mark.parametrize("kind,count", [("zero", 1), ("one", 2), ("into", 0), ("scale", 1)])
    def test_arity(self, euclid_2d, kind, count):
        with pytest.raises(OperandArityMismatch):
            compile(euclid_2d, descriptor(kind, *([TypeSignature((0,))] * count)))


class TestResultTypes:

    def test_declared_result_projects(self, euclid_2d):
        full = TypeSignature.full(euclid_2d)
        even = TypeSignature((0, 3), "Rotor")
        graph = compile(euclid_2d, descriptor("geometric_product", full, full, result=even))
        assert list(graph.outputs) == [0, 3]
        assert graph.result.name == "Rotor"

    def test_absent_outputs_are_omitted(self, euclid_2d):
        vector = TypeSignature((1, 2))
        graph = compile(euclid_2d, descriptor("wedge", vector, vector, result=TypeSignature.full(euclid_2d)))
        assert list(graph.outputs) == [3]

    def test_inferred_result_named_after_known_type(self, euclid_2d):
        vector = TypeSignature((1, 2), "Vector")
        graph = compile(euclid_2d, descriptor("gp", vector, vector), names={(0, 3): "Rotor"})
        assert graph.result.blades == (0, 3)
        assert graph.result.type_name == "Rotor"

    def test_graph_is_acyclic(self, pga_2d):
        full = TypeSignature.full(pga_2d)
        graph = compile(pga_2d, descriptor("sandwich", full, full))
        assert graph.is_acyclic()


class TestErrors:

    def test_unknown_operator(self, euclid_2d):
        full = TypeSignature.full(euclid_2d)
        fingerprint = euclid_2d.fingerprint()
        before = [euclid_2d.product(a, b) for a in euclid_2d.blades for b in euclid_2d.blades]
        d = descriptor("cross_product", full, full)
        with pytest.raises(UnknownOperator) as info:
            compile(euclid_2d, d)
        assert info.value.descriptor is d
        assert "geometric_product" in info.value.context["available"]
        assert euclid_2d.fingerprint() == fingerprint
        assert [euclid_2d.product(a, b) for a in euclid_2d.blades for b in euclid_2d.blades] == before

    @pytest.mark.parametrize("kind,count", [("dual", 2), ("wedge", 1), ("sandwich", 3)])
    def test_arity_mismatch(self, euclid_2d, kind, count):
        full = TypeSignature.full(euclid_2d)
        with pytest.raises(OperandArityMismatch) as info:
            compile(euclid_2d, descriptor(kind, *([full] * count)))
        assert info.value.context["got"] == count

    def test_blade_outside_algebra(self, euclid_2d):
        with pytest.raises(InvalidSignature) as info:
            compile(euclid_2d, descriptor("reverse", TypeSignature((0, 8))))
        assert info.value.context["blade"] == 8
        assert info.value.descriptor is not None
