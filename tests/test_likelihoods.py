import pytest
import torch

from infovae.autoencoder import loss_likelihood, map_likelihood


def test_bernoulli_loss_is_summed_cross_entropy():
    logits = torch.tensor([[0., 2.], [-1., 0.]])
    targets = torch.tensor([[0., 1.], [0.25, 0.5]])
    probs = torch.sigmoid(logits)
    elementwise = -(targets * torch.log(probs) + (1 - targets) * torch.log(1 - probs))
    expected = elementwise.sum(dim=1).mean()
    torch.testing.assert_close(loss_likelihood("bernoulli")(logits, targets), expected)


def test_bernoulli_map_is_sigmoid():
    logits = torch.randn(3, 1, 4, 4)
    torch.testing.assert_close(map_likelihood(logits, "bernoulli"), torch.sigmoid(logits))


def test_mean_squared_error_averages_everything():
    outputs = torch.zeros(2, 1, 2, 2)
    targets = torch.ones(2, 1, 2, 2)
    targets[0] = 0.
    torch.testing.assert_close(loss_likelihood("mean_squared_error")(outputs, targets), torch.tensor(0.5))
    assert map_likelihood(outputs, "mean_squared_error") is outputs


def test_gaussian_fixed_sigma_sums_over_pixels():
    outputs = torch.zeros(2, 1, 2, 2)
    targets = torch.ones(2, 1, 2, 2)
    torch.testing.assert_close(loss_likelihood("gaussian_fixed_sigma")(outputs, targets), torch.tensor(4.))


def test_continuous_bernoulli_is_finite_at_extremes():
    logits = torch.tensor([[-30., 0., 0.001, 30.]])
    targets = torch.tensor([[0., 0.5, 0.5, 1.]])
    assert torch.isfinite(loss_likelihood("continuous_bernoulli")(logits, targets))
    expected = map_likelihood(logits, "continuous_bernoulli")
    assert ((expected > -1e-6) & (expected < 1 + 1e-6)).all()


def test_additional_args_are_passed_on():
    loss_fn = loss_likelihood("continuous_bernoulli", safety_eps=1e-3)
    assert torch.isfinite(loss_fn(torch.randn(2, 4), torch.rand(2, 4)))


def test_invalid_likelihood():
    with pytest.raises(ValueError):
        map_likelihood(torch.zeros(1), "poisson")
    with pytest.raises(ValueError):
        loss_likelihood("poisson")
