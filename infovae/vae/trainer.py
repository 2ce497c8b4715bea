from typing import Generic, TypeVar

from .model import VAEGauss
from ..autoencoder import RegularizedAETrainer
from ..regularizers import ELBORegularizer, LatentRegularizer


VAEType = TypeVar("VAEType", bound=VAEGauss)


class VAETrainer(RegularizedAETrainer[VAEType], Generic[VAEType]):
    def __init__(self,
                 analytic_kl: bool = False,
                 regularizer: LatentRegularizer | None = None,
                 **kwargs):
        """Trainer for a (Gaussian) VAE, minimizing the negative ELBO.

        With the default bernoulli likelihood, the loss is -(log p(x|z) + log p(z) - log q(z|x)), averaged over the
        batch, with z a single reparameterized sample per input.

        Parameters:
            analytic_kl: If True, use the closed-form KL-divergence instead of the Monte Carlo estimate.
            regularizer: If given, overrides the ELBO regularizer entirely. E.g. pass an MMDRegularizer to get an
                         Info-VAE with a stochastic encoder.
            Other parameters: Like in infovae.autoencoder.RegularizedAETrainer, e.g. beta for a beta-VAE.
        """
        if regularizer is None:
            regularizer = ELBORegularizer(analytic=analytic_kl)
        super().__init__(regularizer=regularizer, **kwargs)
