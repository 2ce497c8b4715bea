from __future__ import annotations

import glob
import logging
import os
import re
from collections import defaultdict
from collections.abc import Iterable, Sequence
from time import perf_counter
from typing import Generic, TypeVar

import numpy as np
import torch
from torch import nn
from torch.utils.data import DataLoader
from torch.utils.tensorboard import SummaryWriter
from tqdm.auto import tqdm

from ..types import DataBatchFloat, LabelBatchFloat, ScalarFloat
from ..visualization import plot_image_grid


Model = TypeVar("Model", bound=nn.Module)


class TrainerBase(Generic[Model]):
    def __init__(self,
                 model: Model,
                 optimizers: Sequence[torch.optim.Optimizer],
                 training_loader: DataLoader[tuple[DataBatchFloat, LabelBatchFloat]],
                 n_epochs: int,
                 device: str,
                 validation_loader: DataLoader[tuple[DataBatchFloat, LabelBatchFloat]] | None = None,
                 schedulers: Sequence[torch.optim.lr_scheduler.LRScheduler] | None = None,
                 plot_every_n_epochs: int | None = None,
                 plot_figsize: tuple[int, int] = (12, 12),
                 plot_n_rows: int = 10,
                 checkpointer: Checkpointer | None = None,
                 loss_log_path: str | None = None,
                 verbose: bool = True,
                 use_tqdm: bool = False,
                 tensorboard_logdir: str | None = None,
                 tensorboard_figures: bool = False,
                 suppress_plots: bool = False):
        """Base class for training autoencoder-type models.

        Any Trainer for a specific kind of model should inherit from this and implement the core_step function.

        Parameters:
            model: The model to train.
            optimizers: One optimizer per parameter set. For autoencoders, this is usually one for the encoder and one
                        for the decoder (see make_optimizers). Each one is stepped independently after every batch.
            training_loader: Dataloader for the training set. Should reshuffle every epoch and drop the last
                             incomplete batch, so that all batches have the same size.
            n_epochs: Number of full iterations over the training loader.
            device: Device on which all the torch stuff should happen (e.g. "cuda").
            validation_loader: If given, we evaluate on this after each epoch. Pass None to skip validation.
            schedulers: Learning rate schedulers, stepped once after each epoch.
            plot_every_n_epochs: Every so often, it makes sense to e.g. plot some reconstructions from the model. This
                                 allows us to judge training progress visually. The Trainer class should implement the
                                 plot_examples method. Pass None to disable plotting.
            plot_figsize: Figure size for regular plots.
            plot_n_rows: Usually, we will generate n x n images each time we plot something.
            checkpointer: If given, checkpoints will be stored at the desired frequency (determined by the checkpoint
                          object). In addition, we will save a checkpoint with _final suffix at the end of training.
            loss_log_path: If given, per-epoch loss summaries are appended to this text file, one line per epoch.
            verbose: If True, report on training progress throughout.
            use_tqdm: If True, and verbose is also True, supply per-epoch progress bars.
            tensorboard_logdir: If given, will log training/validation losses to the specified directory for
                                visualization with TensorBoard. Pass None to disable.
            tensorboard_figures: If True, save figures generated in plot_examples to tensorboard logs. Does nothing if
                                 tensorboard_logdir is not given.
            suppress_plots: If True, and tensorboard_figures is True, figures will *only* be stored in tensorboard, and
                            not plotted to output (e.g. in a notebook). No effect if tensorboard_figures is False.
        """
        self.model = model
        self.optimizers = list(optimizers)
        self.training_loader = training_loader
        self.validation_loader = validation_loader
        self.n_epochs = n_epochs
        self.device = device
        self.schedulers = list(schedulers) if schedulers is not None else []

        self.plot_every_n_epochs = plot_every_n_epochs
        self.plot_figsize = plot_figsize
        self.plot_n_rows = plot_n_rows

        self.checkpointer = checkpointer
        self.loss_log = LossLog(loss_log_path) if loss_log_path is not None else None
        self.verbose = verbose
        self.use_tqdm = use_tqdm

        if tensorboard_logdir is not None:
            self.writer = SummaryWriter(tensorboard_logdir)
        else:
            self.writer = None
        self.tensorboard_figures = tensorboard_figures
        self.suppress_plots = suppress_plots

    def train_model(self,
                    start_epoch: int = 0) -> dict[str, np.ndarray]:
        """The main training loop + housekeeping.

        Parameters:
            start_epoch: Index of the first epoch to run. Use the value returned by Checkpointer.restore to resume an
                         interrupted run.

        Returns:
            Dictionary with training (and validation, if a loader was given) metrics per epoch. This maps each metric
            name to a numpy array of per-epoch results. NOTE, for training metrics we only track the average over the
            epoch, while the model changes over the epoch.
        """
        if self.verbose:
            print(f"Running {self.n_epochs - start_epoch} epochs at {len(self.training_loader)} steps per epoch.")

        full_metrics = defaultdict(list)
        for optimizer in self.optimizers:
            optimizer.zero_grad()
        try:
            for epoch_ind in tqdm(iterable=range(start_epoch, self.n_epochs), desc="Overall progress", leave=True,
                                  disable=not self.use_tqdm or not self.verbose):
                if self.plot_every_n_epochs is not None and not epoch_ind % self.plot_every_n_epochs:
                    self.model.eval()
                    self.plot_examples(epoch_ind)
                epoch_train_metrics = self.train_epoch(epoch_ind)
                self.finish_epoch(full_metrics, epoch_train_metrics, epoch_ind)
        finally:
            if self.loss_log is not None:
                self.loss_log.close()

        if self.checkpointer is not None:
            self.checkpointer.save(self.checkpointer.final_path(), self.n_epochs - 1)
        self.model.eval()
        return {key: np.array(values) for key, values in full_metrics.items()}

    def train_epoch(self,
                    epoch_ind: int) -> dict[str, float]:
        """One epoch training loop. Iterates over the training dataloader once and collects metrics.

        Returns:
            Dictionary mapping metric names to their average over the epoch's batches.
        """
        if self.verbose:
            print(f"Starting epoch {epoch_ind + 1}...", end=" ")
        start_time = perf_counter()
        running_totals = defaultdict(float)
        n_batches = 0

        self.model.train()
        # manual progressbar required due to multiprocessing in dataloaders
        with tqdm(total=len(self.training_loader), desc="Training", leave=False,
                  disable=not self.use_tqdm or not self.verbose) as progressbar:
            for data_batch in self.training_loader:
                batch_losses = self.train_step(data_batch)
                for key in batch_losses:
                    running_totals[key] += batch_losses[key].item()
                n_batches += 1
                progressbar.update(1)

        if not n_batches:
            raise ValueError(f"The training loader produced no batches. With drop_last=True, the dataset needs at least "
                             f"batch_size={getattr(self.training_loader, 'batch_size', None)} examples.")
        time_taken = perf_counter() - start_time
        if self.verbose:
            print(f"\tTime taken: {time_taken:.4g} seconds")
        return {key: total / n_batches for key, total in running_totals.items()}

    def finish_epoch(self,
                     full_run_metrics: dict[str, list[float]],
                     epoch_train_metrics: dict[str, float],
                     epoch_ind: int):
        """Bunch of housekeeping after each epoch training loop.

        This function:
            - Evaluates on the validation set, if there is one.
            - Applies learning rate scheduling.
            - Collects train and validation metrics in one place.
            - Writes the text loss log and optionally Tensorboard summaries.
            - Persists the current parameters.

        Parameters:
            full_run_metrics: Should be the dictionary created at the start of train_model. This is modified in-place
                              inside this function.
            epoch_train_metrics: As returned from the last train_epoch call.
            epoch_ind: The index of the epoch (wow).
        """
        epoch_metrics = {"train_" + key: value for key, value in epoch_train_metrics.items()}
        if self.validation_loader is not None:
            val_losses = self.evaluate()
            for key in val_losses:
                epoch_metrics["val_" + key] = val_losses[key].item()
        for scheduler in self.schedulers:
            scheduler.step()

        for key, value in epoch_metrics.items():
            full_run_metrics[key].append(value)
        if self.writer is not None:
            for key, value in epoch_train_metrics.items():
                scalars = {"training": value}
                if "val_" + key in epoch_metrics:
                    scalars["validation"] = epoch_metrics["val_" + key]
                self.writer.add_scalars(key, scalars, epoch_ind)
            self.writer.flush()
        if self.loss_log is not None:
            self.loss_log.write(epoch_ind, epoch_metrics)

        if self.verbose:
            print("\tMetrics:")
            for key, value in epoch_metrics.items():
                print(f"\t\t{key}: {value:.6g}")
            print()
        if self.checkpointer is not None:
            self.checkpointer.maybe_checkpoint(epoch_ind)

    def evaluate(self) -> dict[str, ScalarFloat]:
        """One evaluation loop.

        Returns:
            Dictionary with per-component losses averaged over the validation batches. Note that these are tensors.
        """
        self.model.eval()
        num_batches = len(self.validation_loader)
        val_losses = defaultdict(float)

        with tqdm(total=num_batches, desc="Validation", leave=False,
                  disable=not self.use_tqdm or not self.verbose) as progressbar:
            for data_batch in self.validation_loader:
                _, batch_losses = self.eval_step(data_batch)
                for key in batch_losses:
                    val_losses[key] += batch_losses[key]
                progressbar.update(1)

        # TODO weight by batch size, the last validation batch may be smaller
        for key in val_losses:
            val_losses[key] /= num_batches
        return val_losses

    def train_step(self,
                   data_batch: tuple[DataBatchFloat, LabelBatchFloat]) -> dict[str, ScalarFloat]:
        """Standard training step: Get loss (through core_step), backpropagate, apply gradients to every parameter set.

        Parameters:
            data_batch: A tuple of images, labels.
        """
        batch_loss_full, batch_losses = self.core_step(data_batch)
        batch_loss_full.backward()
        for optimizer in self.optimizers:
            optimizer.step()
            optimizer.zero_grad()
        return batch_losses

    def eval_step(self,
                  data_batch: tuple[DataBatchFloat, LabelBatchFloat]) -> tuple[ScalarFloat, dict[str, ScalarFloat]]:
        """Compute loss for validation. No gradients are computed!"""
        with torch.inference_mode():
            batch_loss_full, batch_losses = self.core_step(data_batch)
        return batch_loss_full, batch_losses

    def core_step(self,
                  data_batch: tuple[DataBatchFloat, LabelBatchFloat]) -> tuple[ScalarFloat, dict[str, ScalarFloat]]:
        """Main logic for computing losses. Not implemented as it is model-dependent.

        Generally this function should:
        - Split data into inputs/labels
        - Move data to the correct device
        - Apply the model
        - Compute any losses
        - Return the overall loss, and a dictionary with component losses (e.g. for VAE: reconstruction and KL losses).

        Parameters:
            data_batch: Expected to be a tuple for inputs, labels. We don't need labels, but the datasets we use come
                        with them, so we just carry them around.

        Return:
            A tuple. The first entry should be the full loss to be used for training. The second entry should be a
            dictionary mapping names to the individual loss components.
        """
        raise NotImplementedError

    def plot_examples(self,
                      epoch_ind: int | None = None):
        """This function is called every couple epochs. You can really do whatever you want in here.

        But it is intended to visually show model progress, e.g. through plotting some reconstructions.
        """
        pass

    def plot_generated_grid(self,
                            generated: DataBatchFloat,
                            epoch_ind: int | None = None,
                            title: str = "Generations",
                            subtitles: Iterable[str] | None = None):
        """Standard function to display a batch of images.

        Parameters:
            generated: Batch of images we want to display. We assume that this has self.plot_n_rows**2 many rows.
            epoch_ind: Only necessary for Tensorboard logging.
            title: Sets the figure title.
        """
        plot_image_grid(generated,
                        figure_size=self.plot_figsize, n_rows=self.plot_n_rows, title=title, subtitles=subtitles,
                        writer=self.writer, epoch_ind=epoch_ind, tensorboard_figures=self.tensorboard_figures,
                        suppress_plots=self.suppress_plots)


class LossLog:
    def __init__(self,
                 path: str):
        """Appends per-epoch scalar loss summaries to a plain text file.

        Each epoch results in one line like "2024-01-01 12:00:00,000 epoch=3 train_loss=12.3 train_mmd_loss=0.01".
        The file is opened on the first write and stays open until close is called. Writing again after that reopens
        it in append mode, so the same log can be used across several train_model calls.

        Parameters:
            path: File to write to. Parent directories are created if necessary.
        """
        directory = os.path.dirname(path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)
        self.path = path
        self.logger = logging.getLogger(f"{__name__}.{os.path.abspath(path)}")
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        self.handler = None

    def open(self):
        # the logger is shared by every LossLog on this path; drop handlers left over from earlier ones
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()
        self.handler = logging.FileHandler(self.path)
        self.handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
        self.logger.addHandler(self.handler)

    def write(self,
              epoch_ind: int,
              metrics: dict[str, float]):
        if self.handler is None:
            self.open()
        summary = " ".join(f"{key}={value:.6g}" for key, value in metrics.items())
        self.logger.info(f"epoch={epoch_ind + 1} {summary}")

    def close(self):
        if self.handler is not None:
            self.logger.removeHandler(self.handler)
            self.handler.close()
            self.handler = None


class Checkpointer:
    def __init__(self,
                 model: nn.Module,
                 directory: str,
                 checkpoint_name: str,
                 frequency: int = 1,
                 optimizers: Sequence[torch.optim.Optimizer] | None = None):
        """Regularly saves model weights (via state_dict) during training, and restores them to resume.

        Parameters:
            model: Model to store checkpoints for.
            directory: Path to store checkpoints to. Will be created if non-existent.
            checkpoint_name: Base name for each checkpoint file. Epoch indices will be appended.
            frequency: Will create a checkpoint every this many epochs.
            optimizers: If given, optimizer states are stored alongside the model, so that training can be resumed
                        exactly where it stopped.
        """
        self.model = model
        self.directory = directory
        self.checkpoint_name = checkpoint_name
        self.frequency = frequency
        self.optimizers = list(optimizers) if optimizers is not None else []
        if not os.path.exists(directory):
            os.makedirs(directory)

    def checkpoint_path(self,
                        epoch_ind: int) -> str:
        return os.path.join(self.directory, self.checkpoint_name + f"_{epoch_ind:04}.pt")

    def final_path(self) -> str:
        return os.path.join(self.directory, self.checkpoint_name + "_final.pt")

    def maybe_checkpoint(self,
                         epoch_ind: int):
        """Create a new checkpoint if the trigger has been met.

        Parameters:
            epoch_ind: Self-explanatory.
        """
        if not epoch_ind % self.frequency:
            self.save(self.checkpoint_path(epoch_ind), epoch_ind)

    def save(self,
             path: str,
             epoch_ind: int):
        """Store model and optimizer states, plus the index of the epoch that was just finished."""
        torch.save({"model": self.model.state_dict(),
                    "optimizers": [optimizer.state_dict() for optimizer in self.optimizers],
                    "epoch": epoch_ind},
                   path)

    def latest_checkpoint(self) -> str | None:
        """Path of the per-epoch checkpoint with the highest epoch index, or None if there is none yet."""
        pattern = re.compile(re.escape(self.checkpoint_name) + r"_(\d+)\.pt")
        indexed = []
        for path in glob.glob(os.path.join(glob.escape(self.directory), glob.escape(self.checkpoint_name) + "_*.pt")):
            match = pattern.fullmatch(os.path.basename(path))
            if match is not None:
                indexed.append((int(match.group(1)), path))
        return max(indexed)[1] if indexed else None

    def restore(self,
                path: str | None = None,
                map_location: str | None = None) -> int:
        """Load model (and optimizer) states from a checkpoint.

        Parameters:
            path: Checkpoint to load. If None, the latest per-epoch checkpoint in the directory is used.
            map_location: Passed to torch.load, e.g. "cpu" to load a GPU checkpoint on a CPU-only machine.

        Returns:
            The index of the epoch to continue training with. Pass this as start_epoch to TrainerBase.train_model.
        """
        if path is None:
            path = self.latest_checkpoint()
        if path is None or not os.path.exists(path):
            raise ValueError(f"No checkpoint to restore from in {self.directory} (requested path: {path}).")
        checkpoint = torch.load(path, map_location=map_location, weights_only=True)
        if len(checkpoint["optimizers"]) != len(self.optimizers):
            raise ValueError(f"Checkpoint {path} holds {len(checkpoint['optimizers'])} optimizer states, but "
                             f"{len(self.optimizers)} optimizers were given.")
        self.model.load_state_dict(checkpoint["model"])
        for optimizer, state in zip(self.optimizers, checkpoint["optimizers"]):
            optimizer.load_state_dict(state)
        return checkpoint["epoch"] + 1


def make_optimizers(model: nn.Module,
                    learning_rate: float,
                    optimizer_class: type[torch.optim.Optimizer] = torch.optim.Adam) -> list[torch.optim.Optimizer]:
    """One optimizer for the encoder parameters and one for the decoder parameters.

    Parameters:
        model: Anything with encoder and decoder submodules, e.g. an Autoencoder.
        learning_rate: Shared by both optimizers.
        optimizer_class: Pass e.g. torch.optim.SGD if you don't like Adam.
    """
    return [optimizer_class(model.encoder.parameters(), lr=learning_rate),
            optimizer_class(model.decoder.parameters(), lr=learning_rate)]
