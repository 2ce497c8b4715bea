import torch
from torch import nn

from ..autoencoder import Autoencoder
from ..regularizers import LatentEncoding
from ..types import DataBatchFloat, TabularBatchFloat


class GaussSampler(nn.Module):
    def forward(self,
                means: TabularBatchFloat,
                log_variances: TabularBatchFloat,
                noise: TabularBatchFloat | None = None) -> TabularBatchFloat:
        """Reparameterized sampler for Gaussian distributions.

        The returned samples are drawn from the respective per-dimension distributions given mean and variance, as
        means + stddevs * noise with standard normal noise. Gradients flow to means and log_variances.

        Parameters:
            noise: If given, use this instead of fresh standard normal noise. Must have the same shape as means.
        """
        if noise is None:
            noise = torch.randn_like(means)
        stddevs = torch.exp(0.5 * log_variances)
        return means + stddevs * noise


class VAEGauss(Autoencoder):
    def __init__(self,
                 encoder: nn.Module,
                 decoder: nn.Module,
                 likelihood: str,
                 latent_dim: int):
        """Wrapper for VAE with Gaussian prior/posterior.

        Parameters:
            encoder: Takes inputs and returns *parameters* for latent distributions, i.e. q(z|x). Note, since we are
                     using a Gaussian q, the encoder should output *twice as many values* as latent_dim: first the
                     means, then the log variances.
            decoder: Takes code samples and reconstructs the inputs. For the "bernoulli" likelihood, the final layer
                     should have no activation function, as the values are mapped to the correct range using the
                     map_likelihood function.
            Other parameters: Like in infovae.autoencoder.Autoencoder.
        """
        super().__init__(encoder, decoder, likelihood, latent_dim)
        self.sampler = GaussSampler()

    def forward(self,
                inputs: DataBatchFloat,
                map_to_expected: bool = True) -> DataBatchFloat:
        reconstructions = self.decoder(self.encode(inputs).codes)
        if map_to_expected:
            reconstructions = self.map_likelihood(reconstructions)
        return reconstructions

    def encode(self,
               inputs: DataBatchFloat) -> LatentEncoding:
        means, log_variances = self.encoding_parameters(inputs)
        return LatentEncoding(self.sampler(means, log_variances), means, log_variances)

    def encoding_parameters(self,
                            inputs: DataBatchFloat) -> tuple[TabularBatchFloat, TabularBatchFloat]:
        """Split encoder outputs into separate means and log variances."""
        parameters = self.encoder(inputs)
        self.check_latent_shape(parameters, 2 * self.latent_dim)
        means, log_variances = torch.split(parameters, self.latent_dim, dim=1)
        return means, log_variances
