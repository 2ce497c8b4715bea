"""This module contains functionalities for variational autoencoders with Gaussian posteriors.

REFERENCES
Original paper: https://arxiv.org/abs/1312.6114
beta-VAE: https://openreview.net/pdf?id=Sy2fzU9gl
"""
from .fun import check_code_usage
from .model import GaussSampler, VAEGauss
from .trainer import VAETrainer
