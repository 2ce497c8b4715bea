import pytest
import torch
from torch import nn
from torch.utils.data import DataLoader, TensorDataset

from infovae.autoencoder import Autoencoder
from infovae.networks import mnist_decoder, mnist_encoder
from infovae.vae import VAEGauss


LATENT_DIM = 2
SMALL_NETWORK = {"filters": (4, 8), "hidden_dim": 16}


@pytest.fixture(autouse=True)
def seed():
    torch.manual_seed(0)


@pytest.fixture
def image_batch():
    """100 28x28x1 images in [0, 1], with dummy labels."""
    return torch.rand(100, 1, 28, 28), torch.zeros(100, dtype=torch.long)


@pytest.fixture
def image_loader():
    images = torch.rand(40, 1, 28, 28)
    labels = torch.zeros(40, dtype=torch.long)
    return DataLoader(TensorDataset(images, labels), batch_size=10, shuffle=True, drop_last=True)


@pytest.fixture
def vae_model():
    return VAEGauss(mnist_encoder(2 * LATENT_DIM, **SMALL_NETWORK),
                    mnist_decoder(LATENT_DIM, filters=(8, 4), hidden_dim=16),
                    likelihood="bernoulli", latent_dim=LATENT_DIM)


@pytest.fixture
def mmd_model():
    return Autoencoder(mnist_encoder(LATENT_DIM, **SMALL_NETWORK),
                       mnist_decoder(LATENT_DIM, filters=(8, 4), hidden_dim=16, output_activation=nn.Sigmoid),
                       likelihood="mean_squared_error", latent_dim=LATENT_DIM)
