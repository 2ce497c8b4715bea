import os

import pytest
import torch
import yaml

from infovae.autoencoder import Autoencoder
from infovae.mmd import InfoVAETrainer
from infovae.regularizers import ELBORegularizer, MMDRegularizer
from infovae.run import DEFAULT_CONFIG, build_model, build_trainer, load_config, merge_config, parse_args
from infovae.vae import VAEGauss, VAETrainer


CONFIG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "configs")
SMALL_MODEL = {"latent_dim": 3, "encoder_filters": [4, 8], "decoder_filters": [8, 4], "hidden_dim": 16}


def write_config(path, config):
    with open(path, "w") as config_file:
        yaml.safe_dump(config, config_file)
    return str(path)


def test_merge_config_is_recursive_and_does_not_modify_base():
    merged = merge_config(DEFAULT_CONFIG, {"model": {"latent_dim": 8}, "objective": "elbo"})
    assert merged["model"]["latent_dim"] == 8
    assert merged["model"]["hidden_dim"] == DEFAULT_CONFIG["model"]["hidden_dim"]
    assert merged["objective"] == "elbo"
    assert DEFAULT_CONFIG["model"]["latent_dim"] == 2


def test_load_config_fills_defaults(tmp_path):
    path = write_config(tmp_path / "config.yaml", {"objective": "elbo", "training": {"n_epochs": 3}})
    config = load_config(path)
    assert config["objective"] == "elbo"
    assert config["training"]["n_epochs"] == 3
    assert config["training"]["learning_rate"] == DEFAULT_CONFIG["training"]["learning_rate"]
    assert load_config() == DEFAULT_CONFIG


def test_load_config_rejects_unknown_objective(tmp_path):
    path = write_config(tmp_path / "config.yaml", {"objective": "gan"})
    with pytest.raises(ValueError):
        load_config(path)


def test_shipped_configs_load():
    assert load_config(os.path.join(CONFIG_DIR, "mnist_mmd.yaml"))["objective"] == "mmd"
    assert load_config(os.path.join(CONFIG_DIR, "mnist_elbo.yaml"))["objective"] == "elbo"


@pytest.mark.parametrize("objective, model_class, likelihood", [("elbo", VAEGauss, "bernoulli"),
                                                                ("mmd", Autoencoder, "mean_squared_error")])
def test_build_model(objective, model_class, likelihood):
    model = build_model(merge_config(DEFAULT_CONFIG, {"objective": objective, "model": SMALL_MODEL}))
    assert type(model) is model_class
    assert model.likelihood == likelihood
    assert model.encode(torch.rand(4, 1, 28, 28)).codes.shape == (4, 3)


@pytest.mark.parametrize("objective, trainer_class, regularizer_class", [("elbo", VAETrainer, ELBORegularizer),
                                                                         ("mmd", InfoVAETrainer, MMDRegularizer)])
def test_build_trainer(objective, trainer_class, regularizer_class, image_loader, tmp_path):
    config = merge_config(DEFAULT_CONFIG, {"objective": objective,
                                           "model": SMALL_MODEL,
                                           "training": {"n_epochs": 1, "beta": 2.},
                                           "logging": {"checkpoint_dir": str(tmp_path / "checkpoints"),
                                                       "loss_log_path": str(tmp_path / "losses.txt"),
                                                       "verbose": False}})
    trainer, checkpointer = build_trainer(config, build_model(config), image_loader)
    assert isinstance(trainer, trainer_class)
    assert isinstance(trainer.regularizer, regularizer_class)
    assert trainer.beta == 2.
    assert len(trainer.optimizers) == 2

    trainer.train_model()
    assert checkpointer.latest_checkpoint() == checkpointer.checkpoint_path(0)
    assert (tmp_path / "losses.txt").exists()


def test_parse_args():
    args = parse_args(["--config", "configs/mnist_mmd.yaml", "--epochs", "5", "--resume"])
    assert args.config == "configs/mnist_mmd.yaml"
    assert args.epochs == 5
    assert args.resume
    assert args.objective is None
