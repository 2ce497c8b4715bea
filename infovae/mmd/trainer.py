from ..autoencoder import Autoencoder, RegularizedAETrainer
from ..regularizers import LatentRegularizer, MMDRegularizer
InfoVAE = Autoencoder


class InfoVAETrainer(RegularizedAETrainer[InfoVAE]):
    def __init__(self,
                 kernel: str = "gaussian",
                 n_prior_samples: int | None = None,
                 regularizer: LatentRegularizer | None = None,
                 **kwargs):
        """Trainer for an MMD-regularized autoencoder (Info-VAE).

        The encoder is deterministic. Use the "mean_squared_error" likelihood with a decoder that ends in a sigmoid to
        get reconstruction MSE + MMD(prior samples, codes).

        Parameters:
            kernel: See infovae.regularizers.compute_kernel.
            n_prior_samples: See infovae.regularizers.MMDRegularizer.
            regularizer: If given, overrides the MMD regularizer (kernel and n_prior_samples are ignored then).
            Other parameters: Like in infovae.autoencoder.RegularizedAETrainer. Unlike for the inverse multiquadratic
                              kernel in Wasserstein AEs, beta = 1 works fine with the gaussian kernel.
        """
        if regularizer is None:
            regularizer = MMDRegularizer(kernel=kernel, n_prior_samples=n_prior_samples)
        super().__init__(regularizer=regularizer, **kwargs)
