"""Datasets and loaders. This is just the usual torchvision setup; images end up as float tensors in [0, 1]."""
import torch
from torch.utils.data import DataLoader
from torchvision import datasets
from torchvision.transforms.v2 import Compose, ToDtype, ToImage

from .types import DataBatchFloat, LabelBatchFloat


DATASETS = {"mnist": datasets.MNIST, "fashion": datasets.FashionMNIST}


def get_datasets_and_loaders(dataset: str,
                             batch_size: int,
                             num_workers: int = 0,
                             root: str = "data",
                             verbose: bool = True) \
                                -> tuple[datasets.VisionDataset,
                                         datasets.VisionDataset,
                                         DataLoader[tuple[DataBatchFloat, LabelBatchFloat]],
                                         DataLoader[tuple[DataBatchFloat, LabelBatchFloat]]]:
    """Standard preparation of datasets (train/validation) and data loaders.

    Parameters:
        dataset: Name of the dataset. Currently allowed are mnist and fashion (FashionMNIST). Both are 28x28 grayscale.
        batch_size: Guess what! The training loader drops the last incomplete batch, so all training batches have
                    exactly this size. This matters for MMD, whose estimate depends on the batch size.
        num_workers: Used by DataLoader.
        root: Base path where datasets should be stored/looked for. Missing datasets are downloaded.
        verbose: If True, print some info about the dataset elements (shape and dtype).
    """
    if dataset not in DATASETS:
        raise ValueError(f"Invalid dataset {dataset}. Allowed are {', '.join(DATASETS)}.")
    # torch keeps telling me to use this instead of ToTensor...
    to_tensor = Compose([ToImage(), ToDtype(torch.float32, scale=True)])

    constructor = DATASETS[dataset]
    train_data = constructor(root=root, train=True, transform=to_tensor, download=True)
    test_data = constructor(root=root, train=False, transform=to_tensor, download=True)

    # shuffle=True reshuffles at the start of every epoch
    train_dataloader = DataLoader(train_data, batch_size=batch_size, shuffle=True, pin_memory=True,
                                  drop_last=True, num_workers=num_workers)
    test_dataloader = DataLoader(test_data, batch_size=batch_size, pin_memory=True,
                                 num_workers=num_workers)
    if verbose:
        images, y = next(iter(train_dataloader))
        print(f"Shape/dtype of batch X [N, C, H, W]: {images.shape}, {images.dtype}")
        print(f"Shape/dtype of batch y: {y.shape}, {y.dtype}")
    return train_data, test_data, train_dataloader, test_dataloader
