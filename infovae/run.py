"""Training script: builds everything from a YAML config and trains.

Usage:
    python -m infovae.run --config configs/mnist_mmd.yaml
    python -m infovae.run --config configs/mnist_elbo.yaml --epochs 20 --device cuda
    python -m infovae.run --config configs/mnist_mmd.yaml --resume

Anything not given in the config file is taken from DEFAULT_CONFIG.
"""
from __future__ import annotations

import argparse
import copy
from typing import Any

import yaml
from torch import nn
from torch.utils.data import DataLoader

from .autoencoder import Autoencoder
from .common import Checkpointer, TrainerBase, count_parameters, make_optimizers
from .data import get_datasets_and_loaders
from .mmd import InfoVAETrainer
from .networks import mnist_decoder, mnist_encoder
from .vae import VAEGauss, VAETrainer


OBJECTIVES = ("mmd", "elbo")

DEFAULT_CONFIG = {
    "objective": "mmd",
    "model": {"latent_dim": 2,
              "encoder_filters": [64, 128],
              "decoder_filters": [128, 64],
              "hidden_dim": 1024},
    "training": {"n_epochs": 10,
                 "learning_rate": 1e-3,
                 "beta": 1.,
                 "analytic_kl": False,
                 "kernel": "gaussian",
                 "n_prior_samples": None,
                 "device": "cpu",
                 "plot_every_n_epochs": None},
    "data": {"dataset": "mnist",
             "batch_size": 200,
             "root": "data",
             "num_workers": 0},
    "logging": {"checkpoint_dir": "checkpoints",
                "checkpoint_name": "model",
                "checkpoint_frequency": 1,
                "loss_log_path": "logs/losses.txt",
                "tensorboard_logdir": None,
                "verbose": True,
                "use_tqdm": False},
}


def merge_config(base: dict[str, Any],
                 override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base. Nested dicts are merged, everything else is replaced."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: str | None = None) -> dict[str, Any]:
    """Read a YAML config and fill in the defaults.

    Parameters:
        path: YAML file. If None, just return (a copy of) the defaults.
    """
    if path is None:
        return copy.deepcopy(DEFAULT_CONFIG)
    with open(path) as config_file:
        override = yaml.safe_load(config_file) or {}
    if not isinstance(override, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(override).__name__}.")
    config = merge_config(DEFAULT_CONFIG, override)
    if config["objective"] not in OBJECTIVES:
        raise ValueError(f"Invalid objective {config['objective']}. Allowed are {', '.join(OBJECTIVES)}.")
    return config


def build_model(config: dict[str, Any]) -> Autoencoder:
    """The ELBO needs a Gaussian encoder and logits out; MMD uses deterministic codes and sigmoid outputs."""
    model_config = config["model"]
    latent_dim = model_config["latent_dim"]
    encoder_kwargs = {"filters": tuple(model_config["encoder_filters"]), "hidden_dim": model_config["hidden_dim"]}
    decoder_kwargs = {"filters": tuple(model_config["decoder_filters"]), "hidden_dim": model_config["hidden_dim"]}

    if config["objective"] == "elbo":
        return VAEGauss(mnist_encoder(2 * latent_dim, **encoder_kwargs),
                        mnist_decoder(latent_dim, **decoder_kwargs),
                        likelihood="bernoulli", latent_dim=latent_dim)
    elif config["objective"] == "mmd":
        return Autoencoder(mnist_encoder(latent_dim, **encoder_kwargs),
                           mnist_decoder(latent_dim, output_activation=nn.Sigmoid, **decoder_kwargs),
                           likelihood="mean_squared_error", latent_dim=latent_dim)
    else:
        raise ValueError(f"Invalid objective {config['objective']}. Allowed are {', '.join(OBJECTIVES)}.")


def build_trainer(config: dict[str, Any],
                  model: Autoencoder,
                  training_loader: DataLoader,
                  validation_loader: DataLoader | None = None) -> tuple[TrainerBase, Checkpointer]:
    """Optimizers, checkpointer and the trainer matching the objective."""
    training_config = config["training"]
    logging_config = config["logging"]
    device = training_config["device"]
    model = model.to(device)

    optimizers = make_optimizers(model, training_config["learning_rate"])
    checkpointer = Checkpointer(model, logging_config["checkpoint_dir"], logging_config["checkpoint_name"],
                                frequency=logging_config["checkpoint_frequency"], optimizers=optimizers)
    common_kwargs = {"model": model,
                     "optimizers": optimizers,
                     "training_loader": training_loader,
                     "validation_loader": validation_loader,
                     "n_epochs": training_config["n_epochs"],
                     "device": device,
                     "beta": training_config["beta"],
                     "plot_every_n_epochs": training_config["plot_every_n_epochs"],
                     "checkpointer": checkpointer,
                     "loss_log_path": logging_config["loss_log_path"],
                     "tensorboard_logdir": logging_config["tensorboard_logdir"],
                     "verbose": logging_config["verbose"],
                     "use_tqdm": logging_config["use_tqdm"]}

    if config["objective"] == "elbo":
        trainer = VAETrainer(analytic_kl=training_config["analytic_kl"], **common_kwargs)
    else:
        trainer = InfoVAETrainer(kernel=training_config["kernel"],
                                 n_prior_samples=training_config["n_prior_samples"],
                                 **common_kwargs)
    return trainer, checkpointer


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Train a VAE (ELBO) or an Info-VAE (MMD) on MNIST-like data.")
    parser.add_argument("--config", type=str, default=None, help="Path to a YAML config file.")
    parser.add_argument("--objective", type=str, choices=OBJECTIVES, default=None,
                        help="Overrides the objective in the config.")
    parser.add_argument("--epochs", type=int, default=None, help="Overrides training.n_epochs.")
    parser.add_argument("--device", type=str, default=None, help="Overrides training.device, e.g. cuda.")
    parser.add_argument("--resume", action="store_true",
                        help="Continue from the latest checkpoint in logging.checkpoint_dir.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None):
    args = parse_args(argv)
    config = load_config(args.config)
    if args.objective is not None:
        config["objective"] = args.objective
    if args.epochs is not None:
        config["training"]["n_epochs"] = args.epochs
    if args.device is not None:
        config["training"]["device"] = args.device

    data_config = config["data"]
    _, _, train_loader, test_loader = get_datasets_and_loaders(data_config["dataset"], data_config["batch_size"],
                                                               num_workers=data_config["num_workers"],
                                                               root=data_config["root"],
                                                               verbose=config["logging"]["verbose"])
    model = build_model(config)
    print(f"Objective {config['objective']}, {count_parameters(model)} trainable parameters.")
    trainer, checkpointer = build_trainer(config, model, train_loader, test_loader)

    start_epoch = 0
    if args.resume and checkpointer.latest_checkpoint() is not None:
        start_epoch = checkpointer.restore(map_location=config["training"]["device"])
        print(f"Resuming at epoch {start_epoch + 1}.")
    return trainer.train_model(start_epoch=start_epoch)


if __name__ == "__main__":
    main()
