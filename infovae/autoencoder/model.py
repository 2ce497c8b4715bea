from collections.abc import Callable

import torch
from torch import nn

from .likelihoods import loss_likelihood, map_likelihood
from ..regularizers import LatentEncoding
from ..types import DataBatchFloat, ScalarFloat


class Autoencoder(nn.Module):
    def __init__(self,
                 encoder: nn.Module,
                 decoder: nn.Module,
                 likelihood: str,
                 latent_dim: int):
        """It's an autoencoder! A deterministic one, as used by the MMD-based models.

        Parameters:
            encoder: Maps inputs to latent_dim codes.
            decoder: Maps codes back to input-shaped outputs. What these outputs mean depends on the likelihood, e.g.
                     logits for "bernoulli", or values already squashed into [0, 1] for "mean_squared_error".
            likelihood: The likelihood we assume for the data, which leads to a loss function equivalent to maximum
                        likelihood. Any of the ones in likelihoods.LIKELIHOODS are valid.
            latent_dim: Size of the codes. Torch modules don't know their own output size, so we store it here. It is
                        fixed for the life of the model and used to generate new samples.
        """
        super().__init__()
        self.encoder = encoder
        self.decoder = decoder
        self.likelihood = likelihood
        self.latent_dim = latent_dim

    def forward(self,
                inputs: DataBatchFloat,
                map_to_expected: bool = False) -> DataBatchFloat:
        reconstructions = self.decoder(self.encode(inputs).codes)
        if map_to_expected:
            reconstructions = self.map_likelihood(reconstructions)
        return reconstructions

    def encode(self,
               inputs: DataBatchFloat) -> LatentEncoding:
        codes = self.encoder(inputs)
        self.check_latent_shape(codes, self.latent_dim)
        return LatentEncoding(codes)

    def check_latent_shape(self,
                           encoder_outputs: torch.Tensor,
                           expected_dim: int):
        """Shape mismatches between encoder and decoder are configuration errors, so we complain loudly."""
        if encoder_outputs.dim() != 2 or encoder_outputs.shape[1] != expected_dim:
            raise ValueError(f"Encoder returned shape {tuple(encoder_outputs.shape)}, expected (batch, {expected_dim})"
                             f" for latent_dim {self.latent_dim}.")

    def generate(self,
                 n_samples: int) -> DataBatchFloat:
        """Decode codes drawn from the standard normal prior."""
        device = next(self.parameters()).device
        codes = torch.randn(n_samples, self.latent_dim, device=device)
        return self.map_likelihood(self.decoder(codes))

    def map_likelihood(self, 
                       outputs: DataBatchFloat) -> DataBatchFloat:
        """Converts network outputs (distribution parameters) to images outputs (expected values)."""
        return map_likelihood(outputs, self.likelihood)
        
    def loss_likelihood(self,
                        **additional_args) -> Callable[[DataBatchFloat, DataBatchFloat], ScalarFloat]:
        """Pick the correct loss for the model's likelihood.

        Parameters:
            additional_args: Optional arguments for the loss besides outputs and targets.
        """
        return loss_likelihood(self.likelihood, **additional_args)
