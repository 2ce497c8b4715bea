import pytest
import torch
from torch import nn

from infovae.autoencoder import Autoencoder
from infovae.networks import mnist_decoder, mnist_encoder
from infovae.vae import VAEGauss, check_code_usage


LATENT_DIM = 2


def test_network_shapes():
    encoder = mnist_encoder(6, filters=(4, 8), hidden_dim=16)
    decoder = mnist_decoder(3, filters=(8, 4), hidden_dim=16)
    codes = encoder(torch.rand(5, 1, 28, 28))
    assert codes.shape == (5, 6)
    assert decoder(codes[:, :3]).shape == (5, 1, 28, 28)


def test_sigmoid_decoder_output_range():
    decoder = mnist_decoder(2, filters=(8, 4), hidden_dim=16, output_activation=nn.Sigmoid)
    outputs = decoder(torch.randn(7, 2) * 10)
    assert ((outputs >= 0) & (outputs <= 1)).all()


def test_vae_encoding(vae_model, image_batch):
    encoding = vae_model.encode(image_batch[0])
    assert encoding.codes.shape == (100, LATENT_DIM)
    assert encoding.means.shape == (100, LATENT_DIM)
    assert encoding.log_variances.shape == (100, LATENT_DIM)


def test_deterministic_encoding(mmd_model, image_batch):
    mmd_model.eval()
    first = mmd_model.encode(image_batch[0])
    second = mmd_model.encode(image_batch[0])
    assert first.means is None and first.log_variances is None
    torch.testing.assert_close(first.codes, second.codes)


def test_reconstruction_shapes(vae_model, mmd_model, image_batch):
    inputs = image_batch[0]
    assert vae_model(inputs).shape == inputs.shape
    assert mmd_model(inputs, map_to_expected=True).shape == inputs.shape
    assert vae_model.generate(4).shape == (4, 1, 28, 28)


def test_latent_dim_mismatch_is_an_error():
    model = Autoencoder(mnist_encoder(3, filters=(4, 8), hidden_dim=16),
                        mnist_decoder(2, filters=(8, 4), hidden_dim=16),
                        likelihood="mean_squared_error", latent_dim=2)
    with pytest.raises(ValueError):
        model.encode(torch.rand(2, 1, 28, 28))

    # a Gaussian encoder must output means *and* log variances
    vae = VAEGauss(mnist_encoder(2, filters=(4, 8), hidden_dim=16),
                   mnist_decoder(2, filters=(8, 4), hidden_dim=16),
                   likelihood="bernoulli", latent_dim=2)
    with pytest.raises(ValueError):
        vae.encode(torch.rand(2, 1, 28, 28))


def test_check_code_usage(vae_model, image_loader):
    klds = check_code_usage(vae_model, image_loader)
    assert klds.shape == (40, LATENT_DIM)
    assert (klds > -1e-6).all()
