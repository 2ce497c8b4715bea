"""Small convolutional encoders/decoders for 28x28 single-channel images (MNIST and friends).

Nothing fancy here; these are just the usual two strided convolutions down, two transposed convolutions up. For
anything bigger you should build your own networks. The trainers only need encoder/decoder modules with the right input
and output shapes.
"""
from torch import nn


def mnist_encoder(n_outputs: int,
                  filters: tuple[int, int] = (64, 128),
                  hidden_dim: int = 1024,
                  activation: type[nn.Module] = nn.LeakyReLU) -> nn.Sequential:
    """Maps (batch, 1, 28, 28) images to (batch, n_outputs) vectors.

    Parameters:
        n_outputs: latent_dim for deterministic encoders, 2 * latent_dim for Gaussian ones (means + log variances).
        filters: Channels of the two convolutions. Each one halves the spatial size, 28 -> 14 -> 7.
        hidden_dim: Size of the fully-connected layer between convolutions and output.
        activation: Should be passed like nn.ReLU, NOT nn.ReLU()!
    """
    return nn.Sequential(nn.Conv2d(1, filters[0], 4, stride=2, padding=1),
                         activation(),
                         nn.Conv2d(filters[0], filters[1], 4, stride=2, padding=1),
                         activation(),
                         nn.Flatten(),
                         nn.Linear(filters[1] * 7 * 7, hidden_dim),
                         activation(),
                         nn.Linear(hidden_dim, n_outputs))


def mnist_decoder(latent_dim: int,
                  filters: tuple[int, int] = (128, 64),
                  hidden_dim: int = 1024,
                  activation: type[nn.Module] = nn.ReLU,
                  output_activation: type[nn.Module] | None = None) -> nn.Sequential:
    """Maps (batch, latent_dim) codes to (batch, 1, 28, 28) outputs.

    Parameters:
        latent_dim: Size of the codes.
        filters: Channels at spatial size 7 and 14, respectively.
        hidden_dim: Size of the first fully-connected layer.
        activation: Hidden activation, see mnist_encoder.
        output_activation: None to return logits (e.g. for the bernoulli likelihood). Pass nn.Sigmoid to squash outputs
                           into [0, 1] directly, e.g. for the mean_squared_error likelihood.
    """
    layers = nn.Sequential(nn.Linear(latent_dim, hidden_dim),
                           activation(),
                           nn.Linear(hidden_dim, filters[0] * 7 * 7),
                           activation(),
                           nn.Unflatten(1, (filters[0], 7, 7)),
                           nn.ConvTranspose2d(filters[0], filters[1], 4, stride=2, padding=1),
                           activation(),
                           nn.ConvTranspose2d(filters[1], 1, 4, stride=2, padding=1))
    if output_activation is not None:
        layers.append(output_activation())
    return layers
