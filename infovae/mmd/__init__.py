"""Info-VAE: an autoencoder whose code distribution is matched to the prior via maximum mean discrepancy.

https://arxiv.org/abs/1706.02262

Note that MMD estimates depend on the batch size; tiny batches make for a very noisy regularizer.
"""
from .trainer import InfoVAE, InfoVAETrainer
