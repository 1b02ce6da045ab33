# %%
import torch
from matplotlib import pyplot as plt

from hybrid_inference.decision_tree import DiscreteKey, assignments
from hybrid_inference.hybrid import GaussianMixtureFactor, HybridGaussianFactorGraph
from hybrid_inference.test_helpers import make_between, make_prior

torch.set_default_dtype(torch.float64)

# %%
"""#1D Mode Switching Example"""

#@title Set parameters
speeds = (0.0, 1.0)
true_modes = [1, 1, 0, 1]
n_steps = len(true_modes) + 1

# Gaussian noise measurement model parameters:
meas_var = 0.05
motion_var = 0.01

#@title Create measurements {vertical-output: true}
true_x = torch.cumsum(
    torch.tensor([0.] + [speeds[m] for m in true_modes]), 0)
meas = true_x + torch.normal(0., meas_var ** 0.5, size=true_x.shape)
steps = torch.arange(n_steps)
plt.scatter(steps, meas, color="red", label="Measurements", marker=".")
plt.legend()
plt.show()

#@title Create factor graph
fg = HybridGaussianFactorGraph(verbose=1)

xs = [f"x{i}" for i in range(n_steps)]
modes = [DiscreteKey(f"M{i}", len(speeds)) for i in range(n_steps - 1)]
for key, z in zip(xs, meas):
    fg.push_back(make_prior(key, z.item(), var=meas_var))

for i, mode in enumerate(modes):
    fg.push_back(GaussianMixtureFactor.from_factors(
        [xs[i], xs[i + 1]], [mode],
        [
            make_between(xs[i], xs[i + 1], speed, var=motion_var)
            for speed in speeds
        ]))

print(fg.diagnosis())

#@title Eliminate the whole track {vertical-output: true}
conditional, mode_factor = fg.eliminate(xs)

all_modes = list(assignments(mode_factor.discrete_keys))
likelihoods = [mode_factor(a) for a in all_modes]
best = all_modes[max(range(len(all_modes)), key=likelihoods.__getitem__)]
print("best modes", [best[m.key] for m in modes], "true modes", true_modes)

# the same numbers, straight from per-branch least squares
check = fg.to_decision_tree_factor(exponentiate=True)
print("max discrepancy", max(abs(check(a) - mode_factor(a)) for a in all_modes))

labels = ["".join(str(a[m.key]) for m in modes) for a in all_modes]
plt.bar(labels, likelihoods, color="C0")
plt.xticks(rotation=90)
plt.ylabel("exp(-error)")
plt.show()

#@title Plot the best track {vertical-output: true}
track = conditional.solve({}, best)
means = torch.cat([track[k] for k in xs])
cov = conditional(best).mean_and_cov()[1]
plt.errorbar(
    steps, means, yerr=torch.sqrt(torch.diagonal(cov)),
    fmt='_', color="C0", label='Track')
plt.scatter(steps, meas, color="red", label="Measurements", marker=".")
plt.plot(steps, true_x, color="k", alpha=0.3, label="Truth")
plt.legend()
plt.show()
