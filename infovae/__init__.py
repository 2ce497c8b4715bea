"""This module contains functionalities for training autoencoders with a pluggable latent regularization loss.

Two objectives are supported out of the box and share the same training loop:
- The standard VAE objective, i.e. maximizing the evidence lower bound (ELBO). Every single posterior q(z|x) is pushed
  towards the prior.
- The Info-VAE objective, which replaces the per-example KL term by a maximum mean discrepancy (MMD) between the
  *aggregate* distribution of codes in a batch and the prior. This tends to give a much more informative latent space.

As in most of the code here, each trainer only specifies the "core" of the training function (i.e. how to compute a
loss), and everything else is handled by a common training loop.
"""
