import pytest
import torch

from hybrid_inference.decision_tree import DiscreteKey, assignments
from hybrid_inference.discrete import DecisionTreeFactor, DiscreteFactorGraph, \
    eliminate_discrete, eliminate_for_mpe, merge_discrete_keys
from hybrid_inference.test_helpers import make_discrete_only_graph

A = DiscreteKey("A", 2)
B = DiscreteKey("B", 3)


def test_product_over_union_of_keys():
    fa = DecisionTreeFactor([A], [0.5, 2.0])
    fb = DecisionTreeFactor([B], [1.0, 2.0, 3.0])
    product = fa * fb
    assert set(product.keys()) == {"A", "B"}
    assert product({"A": 1, "B": 2}) == pytest.approx(6.0)


def test_max_and_sum():
    f = DecisionTreeFactor([A, B], [1.0, 5.0, 2.0, 4.0, 3.0, 0.0])
    assert f.max(["B"])({"A": 0}) == 5.0
    assert f.max(["B"])({"A": 1}) == 4.0
    assert f.sum(["A"])({"B": 1}) == pytest.approx(8.0)
    assert f.sum(["A", "B"])({}) == pytest.approx(15.0)


def test_division_treats_zero_over_zero_as_zero():
    num = DecisionTreeFactor([A], [0.0, 3.0])
    den = DecisionTreeFactor([A], [0.0, 1.5])
    ratio = num / den
    assert ratio({"A": 0}) == 0.0
    assert ratio({"A": 1}) == 2.0


def test_to_tensor_and_normalize():
    f = DecisionTreeFactor([A, B], [1.0, 1.0, 2.0, 2.0, 2.0, 2.0])
    table = f.to_tensor()
    assert table.shape == torch.Size([2, 3])
    assert table[1, 2].item() == 2.0
    assert f.normalize().to_tensor().sum().item() == pytest.approx(1.0)


def test_merge_discrete_keys_checks_cardinality():
    assert merge_discrete_keys([A], [B, A]) == [A, B]
    with pytest.raises(ValueError):
        merge_discrete_keys([A], [DiscreteKey("A", 3)])


def test_mpe_elimination_partial_ordering():
    graph, D1, D2 = make_discrete_only_graph()
    factors = graph.discrete_graph()
    product = factors.product()
    conditional, factor = eliminate_for_mpe(factors, ["D1"])
    assert factor.keys() == ("D2",)
    for assignment in assignments([D2]):
        expected = max(product({**assignment, "D1": d1}) for d1 in range(2))
        assert factor(assignment) == pytest.approx(expected)
    assert [dk.key for dk in conditional.frontal_keys()] == ["D1"]
    assert [dk.key for dk in conditional.parent_keys()] == ["D2"]
    # D1=0: 0.3*[0.2, 0.5, 0.3]; D1=1: 0.7*[0.6, 0.1, 0.3]
    assert conditional.argmax({"D2": 0}) == {"D1": 1}
    assert conditional.argmax({"D2": 1}) == {"D1": 0}


def test_sum_product_elimination():
    graph, D1, D2 = make_discrete_only_graph()
    conditional, factor = eliminate_discrete(graph.discrete_graph(), ["D1"])
    # marginal of D2
    assert factor({"D2": 0}) == pytest.approx(0.3 * 0.2 + 0.7 * 0.6)
    for d2 in range(3):
        total = sum(conditional({"D1": d1, "D2": d2}) for d1 in range(2))
        assert total == pytest.approx(1.0)


def test_unknown_ordering_key():
    graph = DiscreteFactorGraph([DecisionTreeFactor([A], [0.5, 0.5])])
    with pytest.raises(KeyError):
        eliminate_for_mpe(graph, ["nope"])
