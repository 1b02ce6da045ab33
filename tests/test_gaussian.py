import math

import pytest
import torch

from hybrid_inference.gaussian import GaussianFactorGraph, HessianFactor, \
    JacobianFactor, SquaredLoss, eliminate_cholesky
from hybrid_inference.linalg import NotPSDError
from hybrid_inference.test_helpers import make_between, make_contradiction, \
    make_prior


def chain_graph():
    return GaussianFactorGraph([
        make_prior("x", 0.0),
        make_between("x", "y", 1.0),
        make_prior("y", 3.0, var=2.0),
    ])


def test_jacobian_error_is_whitened():
    factor = JacobianFactor({"x": [[2.0]]}, [1.0], loss=SquaredLoss(1, 4.0))
    # 0.5 * ((2*3 - 1) / 2)^2
    assert factor.error({"x": torch.tensor([3.0])}) == pytest.approx(3.125)


def test_hessian_matches_jacobian_error():
    factor = make_between("x", "y", 1.0, var=0.5)
    lam, eta, f = factor.hessian()
    hessian = HessianFactor(factor.keys, factor.dims, lam, eta, f)
    values = {"x": torch.tensor([0.3]), "y": torch.tensor([-1.2])}
    assert hessian.error(values) == pytest.approx(factor.error(values))


def test_optimize_chain():
    values = chain_graph().optimize()
    # x=0 (var 1), y - x = 1 (var 1), y = 3 (var 2)
    joint = chain_graph().get_joint()
    expected = torch.linalg.solve(joint.lam, joint.eta)
    assert torch.allclose(torch.cat([values["x"], values["y"]]), expected)


def test_contradiction_error_at_optimum():
    graph = GaussianFactorGraph([make_contradiction("x", 0.0, 10.0)])
    values = graph.optimize()
    assert values["x"].item() == pytest.approx(5.0)
    assert graph.error(values) == pytest.approx(25.0)


def test_add_does_not_mutate():
    graph = GaussianFactorGraph([make_prior("x", 0.0)])
    bigger = graph + make_prior("y", 1.0)
    assert len(graph) == 1
    assert len(bigger) == 2
    assert bigger.keys() == ["x", "y"]


def test_eliminate_recovers_map():
    graph = chain_graph()
    result = eliminate_cholesky(graph, ["x"])
    conditional, factor = result
    assert conditional.frontal_keys == ("x",)
    assert conditional.parent_keys == ("y",)
    assert factor.keys == ("y",)

    expected = graph.optimize()
    y = factor.mean()
    assert torch.allclose(y, expected["y"])
    x = conditional.solve({"y": y})["x"]
    assert torch.allclose(x, expected["x"])


def test_eliminate_splits_error_exactly():
    graph = chain_graph()
    conditional, factor = eliminate_cholesky(graph, ["x"])
    values = {"x": torch.tensor([0.7]), "y": torch.tensor([-0.4])}
    assert graph.error(values) == pytest.approx(
        conditional.error(values) + factor.error(values))


def test_eliminate_everything_leaves_constant():
    graph = GaussianFactorGraph([make_contradiction("x", 0.0, 10.0)])
    conditional, factor = eliminate_cholesky(graph, ["x"])
    assert factor.keys == ()
    assert factor.error({}) == pytest.approx(25.0)
    mean, cov = conditional.mean_and_cov()
    assert mean.item() == pytest.approx(5.0)
    assert cov.item() == pytest.approx(0.5)


def test_keyless_remainder_is_never_negative():
    graph = GaussianFactorGraph([make_prior("x", 3.0, var=0.1)])
    _, factor = eliminate_cholesky(graph, ["x"])
    assert factor.error({}) >= 0.0
    assert math.exp(-factor.error({})) <= 1.0


def test_separator_order_is_respected():
    graph = GaussianFactorGraph([
        make_between("x", "y", 1.0),
        make_between("x", "z", 2.0),
        make_prior("x", 0.0),
    ])
    conditional, factor = eliminate_cholesky(graph, ["x"], separator=["z", "y"])
    assert factor.keys == ("z", "y")
    assert conditional.keys == ("x", "z", "y")
    with pytest.raises(KeyError):
        eliminate_cholesky(graph, ["x"], separator=["y"])


def test_empty_graph_gives_empty_result():
    result = eliminate_cholesky(GaussianFactorGraph(), ["x"])
    assert result.is_empty()
    assert result == (None, None)


def test_missing_ordering_key():
    with pytest.raises(KeyError):
        eliminate_cholesky(chain_graph(), ["z"])


def test_singular_block_raises():
    graph = GaussianFactorGraph([JacobianFactor({"x": [[1.0]], "y": [[1.0]]}, [0.0])])
    with pytest.raises(NotPSDError):
        eliminate_cholesky(graph, ["x", "y"])


def test_multidimensional_keys():
    graph = GaussianFactorGraph([
        make_prior("p", [1.0, 2.0], dim=2),
        make_between("p", "q", [0.5, -0.5], dim=2),
    ])
    conditional, factor = eliminate_cholesky(graph, ["p"])
    assert factor.dims == {"q": 2}
    assert torch.allclose(factor.mean(), torch.tensor([1.5, 1.5]))


def test_prob_prime_is_exp_of_minus_error():
    graph = chain_graph()
    values = {"x": torch.tensor([0.2]), "y": torch.tensor([1.5])}
    assert graph.prob_prime(values) == pytest.approx(math.exp(-graph.error(values)))
    assert make_prior("x", 0.0).prob_prime({"x": torch.tensor([0.0])}) == pytest.approx(1.0)
