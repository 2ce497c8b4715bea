from collections.abc import Callable

import torch
from torch import nn

from ..common import sum_except
from ..types import DataBatchFloat, ScalarFloat


LIKELIHOODS = ("bernoulli", "continuous_bernoulli", "gaussian_fixed_sigma", "laplace", "mean_squared_error")


def map_likelihood(outputs: DataBatchFloat,
                   likelihood: str) -> DataBatchFloat:
    """Converts network outputs (distribution parameters) to images outputs (expected values).

    Parameters:
        outputs: The values to convert.
        likelihood: The likelihood we assume for the data, which leads to a loss function equivalent to maximum
                    likelihood. Any of the ones in LIKELIHOODS are valid.
    """
    if likelihood in ["gaussian_fixed_sigma", "laplace", "mean_squared_error"]:
        return outputs
    elif likelihood == "bernoulli":
        return nn.functional.sigmoid(outputs)
    elif likelihood == "continuous_bernoulli":
        return continuous_bernoulli_expected_value(nn.functional.sigmoid(outputs))
    else:
        raise ValueError(f"Invalid likelihood {likelihood}. Allowed are {', '.join(LIKELIHOODS)}.")
    

def loss_likelihood(likelihood: str,
                    **additional_args) -> Callable[[DataBatchFloat, DataBatchFloat], ScalarFloat]:
    """Pick the correct loss for a given likelihood.

    All of these are *negative* log-likelihoods (up to constants), so they can be minimized directly.

    Parameters:
        likelihood: See map_likelihood.
        additional_args: Optional arguments for the loss besides outputs and targets. For example, these could be
                         constants needed for numerical stability.
    """
    if likelihood == "gaussian_fixed_sigma":
        function = squared_loss
    elif likelihood == "mean_squared_error":
        function = mean_squared_error
    elif likelihood == "laplace":
        function = abs_loss
    elif likelihood == "bernoulli":
        function = bernoulli_loss
    elif likelihood == "continuous_bernoulli":
        function = continuous_bernoulli_loss
    else:
        raise ValueError(f"Invalid likelihood {likelihood}. Allowed are {', '.join(LIKELIHOODS)}.")

    if additional_args:
        def partial_function(x, y):
            return function(x, y, **additional_args)
        return partial_function

    return function


def squared_loss(outputs: DataBatchFloat,
                 targets: DataBatchFloat) -> ScalarFloat:
    """Corresponds to Gaussian likelihood with fixed sigma. Summed over pixels, averaged over the batch."""
    squared_difference = (outputs - targets)**2
    return sum_except(squared_difference).mean()


def mean_squared_error(outputs: DataBatchFloat,
                       targets: DataBatchFloat) -> ScalarFloat:
    """Plain MSE, averaged over *all* elements.

    This is what the MMD-based models use. Outputs should already be in the data range, i.e. the decoder should end in
    a saturating nonlinearity such as a sigmoid. Because of the averaging over pixels, this term is much smaller than
    squared_loss; keep that in mind when balancing it with a regularizer.
    """
    return ((outputs - targets)**2).mean()


def abs_loss(outputs: DataBatchFloat,
             targets: DataBatchFloat) -> ScalarFloat:
    """Corresponds to Laplacian likelihood with fixed b."""
    absolute_difference = (outputs - targets).abs()
    return sum_except(absolute_difference).mean()


def bernoulli_loss(outputs: DataBatchFloat,
                   targets: DataBatchFloat) -> ScalarFloat:
    """Corresponds to Bernoulli likelihood, i.e. -log p(x|z) for the standard VAE on [0, 1] images.

    You *can* use it for targets in the range [0, 1], but that is no longer a proper likelihood.

    Outputs should be logits! No sigmoid in your model!
    """
    cross_entropy = nn.functional.binary_cross_entropy_with_logits(outputs, targets, reduction="none")
    return sum_except(cross_entropy).mean()


def continuous_bernoulli_loss(outputs: DataBatchFloat,
                              targets: DataBatchFloat,
                              safety_eps: float = 1e-4) -> ScalarFloat:
    """Corresponds to the Continuous Bernoulli likelihood, a properly normalized Bernoulli on the range [0, 1].

    Note that outputs should be logits!

    Parameters:
        safety_eps: Sigmoid outputs smaller than this, or larger than 1-eps, will be clamped. The log normalizer
                    diverges at the edges.
    """
    cross_entropy = nn.functional.binary_cross_entropy_with_logits(outputs, targets, reduction="none")
    normalizer = continuous_bernoulli_log_normalizer(torch.clamp(nn.functional.sigmoid(outputs),
                                                                 safety_eps, 1 - safety_eps))
    return sum_except(cross_entropy - normalizer).mean()


def continuous_bernoulli_log_normalizer(prob: DataBatchFloat,
                                        lower_lim: float = 0.49,
                                        upper_lim: float = 0.51) -> DataBatchFloat:
    """Normalizer for the Continuous Bernoulli distribution.
    
    This is numerically problematic around 0.5, so we use a Taylor expansion around that value there. The value for
    cut_prob where the condition is False is irrelevant since the result at those points is not used.

    Parameters:
        prob: Parameter of the distribution.
        lower_lim, upper_lim: Values in this range use the Taylor expansion.
    """
    numerical_condition = torch.logical_or(torch.less(prob, lower_lim), torch.greater(prob, upper_lim))
    cut_prob = torch.where(numerical_condition, prob, lower_lim * torch.ones_like(prob))
    log_normalizer = (torch.log(torch.abs(2 * torch.atanh(1 - 2 * cut_prob)))
                      - torch.log(torch.abs(1 - 2 * cut_prob)))
    taylor_expansion = (torch.log(torch.tensor(2.)) + 4/3 * torch.pow(prob - 0.5, 2)
                        + 104/45 * torch.pow(prob - 0.5, 4))
    return torch.where(numerical_condition, log_normalizer, taylor_expansion)


def continuous_bernoulli_expected_value(prob: DataBatchFloat,
                                        lower_lim: float = 0.49,
                                        upper_lim: float = 0.51) -> DataBatchFloat:
    """Expected value of a Continuous Bernoulli distribution with a given probability parameter.

    Unlike for the regular Bernoulli, this is not equal to the probability. Around 0.5 we just return 0.5.
    """
    numerical_condition = torch.logical_or(torch.less(prob, lower_lim), torch.greater(prob, upper_lim))
    cut_prob = torch.where(numerical_condition, prob, lower_lim * torch.ones_like(prob))
    expected = (cut_prob / (2*cut_prob - 1)
                + 1 / (2 * torch.atanh(1 - 2*cut_prob)))
    return torch.where(numerical_condition, expected, 0.5*torch.ones_like(expected))
