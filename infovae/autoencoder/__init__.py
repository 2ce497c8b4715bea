"""This module provides functionalities for deterministic autoencoders.

Plain autoencoders are not generative models, but add an MMD penalty on the codes and you get an Info-VAE. The
variational versions in the vae module reuse most of this code.
"""
from .likelihoods import LIKELIHOODS, loss_likelihood, map_likelihood
from .model import Autoencoder
from .trainer import AETrainer, RegularizedAETrainer
