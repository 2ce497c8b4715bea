from collections.abc import Callable
from typing import Generic, TypeVar

import torch

from .model import Autoencoder
from ..common import TrainerBase, interleave
from ..regularizers import LatentRegularizer
from ..types import DataBatchFloat, LabelBatchFloat, ScalarFloat


AEType = TypeVar("AEType", bound=Autoencoder)


class AETrainer(TrainerBase[AEType], Generic[AEType]):
    def __init__(self,
                 reconstruction_loss_fn: Callable[[DataBatchFloat, DataBatchFloat], ScalarFloat] | None = None,
                 **kwargs):
        """Trainer for a plain autoencoder, without any latent regularization.

        Parameters:
            reconstruction_loss_fn: If desired, you can overwrite the likelihood-based loss here.
            Other parameters: Like in infovae.common.TrainerBase.
        """
        super().__init__(**kwargs)
        if reconstruction_loss_fn is None:
            reconstruction_loss_fn = self.model.loss_likelihood()
        self.reconstruction_loss_fn = reconstruction_loss_fn

    def core_step(self,
                  data_batch: tuple[DataBatchFloat, LabelBatchFloat]) -> tuple[ScalarFloat, dict[str, ScalarFloat]]:
        """Compute reconstructions and corresponding loss.

        Parameters:
            data_batch: Expected to be a *tuple* of inputs, labels. The labels are ignored!
        """
        input_batch, _ = data_batch
        input_batch = input_batch.to(self.device)
        output_batch = self.model(input_batch)
        reconstruction_loss = self.reconstruction_loss_fn(output_batch, input_batch)
        return reconstruction_loss, {"reconstruction_loss": reconstruction_loss}

    def plot_examples(self,
                      epoch_ind: int | None = None):
        self.reconstruction_examples(epoch_ind)

    def reconstruction_examples(self,
                                epoch_ind: int | None = None):
        """Plot reconstructions for some images. Uses the validation set if there is one."""
        loader = self.validation_loader if self.validation_loader is not None else self.training_loader
        inputs, _ = next(iter(loader))
        inputs = inputs[:self.plot_n_rows**2 // 2].to(self.device)
        with torch.inference_mode():
            reconstructions = self.model(inputs, map_to_expected=True)
            self.reconstruction_grid(inputs, reconstructions, epoch_ind)

    def reconstruction_grid(self,
                            inputs: DataBatchFloat,
                            reconstructions: DataBatchFloat,
                            epoch_ind: int | None = None):
        alternating = interleave(inputs, reconstructions)
        self.plot_generated_grid(alternating, title="Reconstructions", epoch_ind=epoch_ind)


class RegularizedAETrainer(AETrainer[AEType], Generic[AEType]):
    def __init__(self,
                 regularizer: LatentRegularizer,
                 beta: float = 1.,
                 **kwargs):
        """Autoencoder trainer with a pluggable latent regularization loss.

        The full loss is reconstruction_loss + beta * regularization. Which regularizer makes sense depends on the
        model: ELBORegularizer needs a Gaussian encoder (VAEGauss), MMDRegularizer works with any codes.

        Parameters:
            regularizer: Computes the latent regularization loss from the encoder outputs.
            beta: Multiplier for the regularization loss.
            Other parameters: Like in AETrainer.
        """
        super().__init__(**kwargs)
        self.regularizer = regularizer
        self.beta = beta

    def core_step(self,
                  data_batch: tuple[DataBatchFloat, LabelBatchFloat]) -> tuple[ScalarFloat, dict[str, ScalarFloat]]:
        """Core step computing reconstruction loss and latent regularization."""
        input_batch, _ = data_batch
        input_batch = input_batch.to(self.device)
        encoding = self.model.encode(input_batch)
        output_batch = self.model.decoder(encoding.codes)

        reconstruction_loss = self.reconstruction_loss_fn(output_batch, input_batch)
        regularization_loss, regularization_components = self.regularizer(encoding, input_batch.shape[0])
        full_loss = reconstruction_loss + self.beta * regularization_loss
        return full_loss, {"loss": full_loss, "reconstruction_loss": reconstruction_loss, **regularization_components}

    def plot_examples(self,
                      epoch_ind: int | None = None):
        """Plot AE reconstructions as well as images generated from the latent prior."""
        self.reconstruction_examples(epoch_ind)
        with torch.inference_mode():
            generated = self.model.generate(self.plot_n_rows**2)
        self.plot_generated_grid(generated, epoch_ind)
