"""Latent-space regularizers, i.e. the part of the loss that is not about reconstruction.

These are interchangeable: the trainers only ever call them with the encoder output and the batch size, and add the
result (times some beta) to the reconstruction loss.

ELBORegularizer: Standard VAE. Pushes *each* q(z|x) towards the prior p(z).
MMDRegularizer: Info-VAE. Only asks that the *aggregate* distribution of codes in a batch matches the prior, as
                measured by the maximum mean discrepancy. This is sampling-free for the encoder, but the estimate
                depends on the batch size and there is no guarantee it is unbiased for finite batches. That's just how
                the technique is; don't try to "fix" it.

REFERENCES
VAE: https://arxiv.org/abs/1312.6114
Info-VAE: https://arxiv.org/abs/1706.02262
MMD: https://jmlr.org/papers/v13/gretton12a.html
"""
import math
from typing import NamedTuple

import torch

from .common import pairwise_mean_squares, squared_distances, sum_except
from .types import DataBatchFloat, KernelMatrixFloat, ScalarFloat, TabularBatchFloat, VectorBatchFloat


KERNELS = ("gaussian", "inverse_multiquadratic")
LOG_2PI = math.log(2 * math.pi)


class LatentEncoding(NamedTuple):
    """Everything an encoder pass produces.

    codes: What goes into the decoder. For deterministic encoders, this is just the encoder output; for Gaussian
           encoders, it is a (reparameterized) sample from q(z|x).
    means, log_variances: Parameters of q(z|x). None for deterministic encoders.
    """
    codes: TabularBatchFloat
    means: TabularBatchFloat | None = None
    log_variances: TabularBatchFloat | None = None


class LatentRegularizer:
    """Strategy interface: compute the latent regularization loss for one batch."""
    name = "regularization_loss"

    def __call__(self,
                 encoding: LatentEncoding,
                 batch_size: int) -> tuple[ScalarFloat, dict[str, ScalarFloat]]:
        """
        Parameters:
            encoding: As returned by the model's encode function.
            batch_size: Number of examples in the batch. Some estimators (MMD) depend on it.

        Returns:
            The loss to add, and a dictionary of named components for reporting.
        """
        raise NotImplementedError


class ELBORegularizer(LatentRegularizer):
    name = "kl_loss"

    def __init__(self,
                 analytic: bool = False):
        """The regularization part of the negative ELBO, for Gaussian posteriors and a standard Gaussian prior.

        Parameters:
            analytic: If False, use the single-sample Monte Carlo estimate log q(z|x) - log p(z) evaluated at the
                      sampled codes. If True, use the closed-form KL-divergence instead, which has lower variance.
                      Both have the same expectation.
        """
        self.analytic = analytic

    def __call__(self,
                 encoding: LatentEncoding,
                 batch_size: int) -> tuple[ScalarFloat, dict[str, ScalarFloat]]:
        if encoding.means is None or encoding.log_variances is None:
            raise ValueError("The ELBO needs means and log variances; use a Gaussian encoder model (e.g. VAEGauss).")
        if self.analytic:
            kl_loss = kl_loss_gauss(encoding.means, encoding.log_variances)
        else:
            log_q = log_normal_pdf(encoding.codes, encoding.means, encoding.log_variances)
            log_p = log_normal_pdf(encoding.codes, torch.zeros_like(encoding.codes), torch.zeros_like(encoding.codes))
            kl_loss = (log_q - log_p).mean()
        return kl_loss, {self.name: kl_loss}


class MMDRegularizer(LatentRegularizer):
    name = "mmd_loss"

    def __init__(self,
                 kernel: str = "gaussian",
                 n_prior_samples: int | None = None):
        """Maximum mean discrepancy between codes and samples from a standard normal.

        Parameters:
            kernel: One of KERNELS. See compute_kernel.
            n_prior_samples: How many "true" samples to draw from the prior for each batch. If None, use the batch
                             size. More samples mean a less noisy estimate, but the kernel matrices grow
                             quadratically.
        """
        if kernel not in KERNELS:
            raise ValueError(f"Invalid kernel {kernel}. Allowed are {', '.join(KERNELS)}.")
        if kernel == "inverse_multiquadratic" and n_prior_samples is not None and n_prior_samples < 2:
            raise ValueError(f"The inverse multiquadratic MMD needs at least 2 prior samples, got {n_prior_samples}.")
        self.kernel = kernel
        self.n_prior_samples = n_prior_samples

    def __call__(self,
                 encoding: LatentEncoding,
                 batch_size: int) -> tuple[ScalarFloat, dict[str, ScalarFloat]]:
        codes = encoding.codes
        n_samples = self.n_prior_samples if self.n_prior_samples is not None else batch_size
        prior_samples = torch.randn(n_samples, codes.shape[1], device=codes.device, dtype=codes.dtype)
        mmd_loss = compute_mmd(prior_samples, codes, self.kernel)
        return mmd_loss, {self.name: mmd_loss}


def log_normal_pdf(sample: DataBatchFloat,
                   mean: DataBatchFloat,
                   log_variance: DataBatchFloat) -> VectorBatchFloat:
    """Log-density of a diagonal Gaussian, summed over all but the batch dimension.

    Per dimension this is -0.5 * (log(2pi) + log_variance + (sample - mean)**2 / variance).
    """
    per_dim = -0.5 * (LOG_2PI + log_variance + torch.exp(-log_variance) * (sample - mean)**2)
    return sum_except(per_dim)


def kl_loss_gauss(means: DataBatchFloat,
                  log_variances: DataBatchFloat) -> ScalarFloat:
    """KL-Divergence for Gaussian posterior and Standard Gaussian prior. This can be solved in closed form."""
    return 0.5 * sum_except(means**2 - 1 + torch.exp(log_variances) - log_variances).mean()


def compute_kernel(inp1: TabularBatchFloat,
                   inp2: TabularBatchFloat,
                   kind: str = "gaussian") -> KernelMatrixFloat:
    """Kernel values between all pairs of rows of two batches.

    gaussian: k(a, b) = exp(-mean((a - b)**2) / dim). Self-similarity is exactly 1.
    inverse_multiquadratic: k(a, b) = c / (c + ||a - b||**2) with c = 2 * dim. Heavier tails, so far-away codes still
                            get some gradient.
    """
    dim = inp1.shape[1]
    if kind == "gaussian":
        return torch.exp(-pairwise_mean_squares(inp1, inp2) / dim)
    elif kind == "inverse_multiquadratic":
        c = 2 * dim
        # clamp since the expansion trick can give tiny negative distances
        return c / (c + torch.clamp(squared_distances(inp1, inp2), min=0.))
    else:
        raise ValueError(f"Invalid kernel {kind}. Allowed are {', '.join(KERNELS)}.")


def compute_mmd(inp1: TabularBatchFloat,
                inp2: TabularBatchFloat,
                kind: str = "gaussian") -> ScalarFloat:
    """Kernel-based Maximum Mean Discrepancy estimate: mean k(x, x) + mean k(y, y) - 2 mean k(x, y).

    For the gaussian kernel, we use the plain (biased) estimate including the diagonals. This is what makes
    compute_mmd(x, x) come out as zero. For the inverse multiquadratic kernel, the self-comparisons exclude the
    diagonals, which is the unbiased estimate.
    """
    if kind == "inverse_multiquadratic" and min(len(inp1), len(inp2)) < 2:
        raise ValueError(f"The inverse multiquadratic MMD needs at least 2 rows per input, got {len(inp1)} and "
                         f"{len(inp2)}.")
    k_11 = compute_kernel(inp1, inp1, kind)
    k_22 = compute_kernel(inp2, inp2, kind)
    k_12 = compute_kernel(inp1, inp2, kind)
    if kind == "gaussian":
        return k_11.mean() + k_22.mean() - 2*k_12.mean()
    return off_diagonal_mean(k_11) + off_diagonal_mean(k_22) - 2*k_12.mean()


def off_diagonal_mean(kernel_matrix: KernelMatrixFloat) -> ScalarFloat:
    n = kernel_matrix.shape[0]
    eyed = kernel_matrix * (1 - torch.eye(n, device=kernel_matrix.device, dtype=kernel_matrix.dtype))
    return eyed.sum() / (n * (n - 1))
