import math

import pytest
import torch

from infovae.regularizers import (ELBORegularizer, LatentEncoding, MMDRegularizer, compute_kernel, compute_mmd,
                                  kl_loss_gauss, log_normal_pdf)
from infovae.vae import GaussSampler


def test_sampler_with_zero_noise_returns_means():
    means = torch.randn(16, 3)
    log_variances = torch.randn(16, 3) * 4
    samples = GaussSampler()(means, log_variances, noise=torch.zeros_like(means))
    assert torch.equal(samples, means)


def test_sampler_is_differentiable():
    means = torch.randn(8, 2, requires_grad=True)
    log_variances = torch.randn(8, 2, requires_grad=True)
    GaussSampler()(means, log_variances).sum().backward()
    torch.testing.assert_close(means.grad, torch.ones_like(means))
    assert log_variances.grad is not None and torch.isfinite(log_variances.grad).all()


def test_sampler_uses_standard_deviation():
    means = torch.zeros(1, 2)
    log_variances = torch.log(torch.tensor([[4., 9.]]))
    samples = GaussSampler()(means, log_variances, noise=torch.ones(1, 2))
    torch.testing.assert_close(samples, torch.tensor([[2., 3.]]))


def test_log_normal_pdf_standard_normal_at_zero():
    dim = 5
    zeros = torch.zeros(3, dim)
    log_density = log_normal_pdf(zeros, zeros, zeros)
    torch.testing.assert_close(log_density, torch.full((3,), -0.5 * math.log(2 * math.pi) * dim))


def test_log_normal_pdf_matches_torch_distributions():
    sample = torch.randn(4, 3)
    mean = torch.randn(4, 3)
    log_variance = torch.randn(4, 3)
    expected = torch.distributions.Normal(mean, torch.exp(0.5 * log_variance)).log_prob(sample).sum(dim=1)
    torch.testing.assert_close(log_normal_pdf(sample, mean, log_variance), expected)


def test_gaussian_kernel_self_similarity_is_one():
    x = torch.randn(10, 4) * 5
    kernel = compute_kernel(x, x)
    assert kernel.shape == (10, 10)
    assert torch.equal(torch.diagonal(kernel), torch.ones(10))
    assert (kernel <= 1).all()


def test_gaussian_kernel_formula():
    a = torch.tensor([[0., 0.]])
    b = torch.tensor([[1., 3.]])
    # mean squared difference is 5, divided by dim 2
    torch.testing.assert_close(compute_kernel(a, b), torch.tensor([[math.exp(-2.5)]]))


def test_mmd_of_identical_batches_is_zero():
    x = torch.randn(50, 2)
    torch.testing.assert_close(compute_mmd(x, x), torch.tensor(0.), atol=1e-6, rtol=0)


def test_mmd_detects_shifted_distribution():
    prior = torch.randn(200, 2)
    matching = torch.randn(200, 2)
    shifted = torch.randn(200, 2) + 3
    assert compute_mmd(prior, shifted) > 10 * compute_mmd(prior, matching)


def test_inverse_multiquadratic_kernel():
    x = torch.randn(6, 3)
    kernel = compute_kernel(x, x, "inverse_multiquadratic")
    torch.testing.assert_close(torch.diagonal(kernel), torch.ones(6))
    assert torch.isfinite(compute_mmd(x, torch.randn(6, 3), "inverse_multiquadratic"))


def test_inverse_multiquadratic_mmd_needs_two_samples():
    with pytest.raises(ValueError):
        compute_mmd(torch.randn(1, 2), torch.randn(1, 2), "inverse_multiquadratic")
    with pytest.raises(ValueError):
        compute_mmd(torch.randn(5, 2), torch.randn(1, 2), "inverse_multiquadratic")
    with pytest.raises(ValueError):
        MMDRegularizer(kernel="inverse_multiquadratic", n_prior_samples=1)
    # the biased gaussian estimate is fine with single samples
    assert torch.isfinite(compute_mmd(torch.randn(1, 2), torch.randn(1, 2)))


def test_invalid_kernel():
    with pytest.raises(ValueError):
        MMDRegularizer(kernel="laplacian")
    with pytest.raises(ValueError):
        compute_kernel(torch.randn(2, 2), torch.randn(2, 2), "laplacian")


def test_mmd_regularizer_prior_sample_count():
    codes = torch.randn(10, 2, requires_grad=True)
    loss, components = MMDRegularizer(n_prior_samples=30)(LatentEncoding(codes), batch_size=10)
    assert loss.dim() == 0
    assert set(components) == {"mmd_loss"}
    loss.backward()
    assert codes.grad.shape == codes.shape


def test_elbo_regularizer_needs_gaussian_parameters():
    with pytest.raises(ValueError):
        ELBORegularizer()(LatentEncoding(torch.randn(4, 2)), batch_size=4)


def test_elbo_regularizer_monte_carlo_estimate():
    means = torch.randn(4, 2)
    log_variances = torch.randn(4, 2)
    codes = torch.randn(4, 2)
    loss, components = ELBORegularizer()(LatentEncoding(codes, means, log_variances), batch_size=4)
    expected = (log_normal_pdf(codes, means, log_variances)
                - log_normal_pdf(codes, torch.zeros_like(codes), torch.zeros_like(codes))).mean()
    torch.testing.assert_close(loss, expected)
    assert components == {"kl_loss": loss}


def test_elbo_regularizer_vanishes_at_prior():
    codes = torch.randn(8, 3)
    zeros = torch.zeros(8, 3)
    mc_loss, _ = ELBORegularizer()(LatentEncoding(codes, zeros, zeros), batch_size=8)
    analytic_loss, _ = ELBORegularizer(analytic=True)(LatentEncoding(codes, zeros, zeros), batch_size=8)
    torch.testing.assert_close(mc_loss, torch.tensor(0.))
    torch.testing.assert_close(analytic_loss, torch.tensor(0.))


def test_monte_carlo_kl_approaches_analytic_kl():
    means = torch.full((20000, 2), 0.5)
    log_variances = torch.full((20000, 2), -1.)
    codes = GaussSampler()(means, log_variances)
    mc_loss, _ = ELBORegularizer()(LatentEncoding(codes, means, log_variances), batch_size=20000)
    torch.testing.assert_close(mc_loss, kl_loss_gauss(means, log_variances), atol=0.05, rtol=0)
