import torch
from torch import nn

from ..types import DataBatchFloat, KernelMatrixFloat, TabularBatchFloat, VectorBatchFloat


def count_parameters(model: nn.Module) -> int:
    """Get number of (trainable) parameters in a model."""
    return sum(p.numel() for p in model.parameters() if p.requires_grad)


def sum_except(x: DataBatchFloat,
               keepdim: bool = False) -> VectorBatchFloat:
    """Sum over all dimensions of x except the first one."""
    return x.sum(dim=tuple(i for i in range(1, x.ndim)), keepdim=keepdim)


def interleave(inputs: DataBatchFloat,
               other: DataBatchFloat) -> DataBatchFloat:
    """Interleave rows of two tensors of the same shape.
    
    The result will feature rows from inputs and other in an alternating fashion.
    """
    stacked = torch.stack((inputs, other), dim=1)
    return stacked.view(2*inputs.shape[0], *inputs.shape[1:])


def squared_distances(row_input: TabularBatchFloat,
                      column_input: TabularBatchFloat) -> KernelMatrixFloat:
    """Compute squared distances between two batches of vectors.
    
    We make use of (a - b)**2 = a**2 - 2ab + b**2. This is cheap, but not exact: the diagonal of
    squared_distances(x, x) can come out slightly off zero. Use pairwise_mean_squares if that matters.
    """
    return ((row_input**2).sum(dim=1)[:, torch.newaxis] 
            - 2 * (row_input @ column_input.T) 
            + (column_input**2).sum(dim=1)[torch.newaxis, :])


def pairwise_mean_squares(row_input: TabularBatchFloat,
                          column_input: TabularBatchFloat) -> KernelMatrixFloat:
    """Mean (over dimensions) of squared differences between all pairs of rows.

    Builds the full (b1 x b2 x d) difference tensor, so identical rows give exactly zero.
    """
    differences = row_input[:, torch.newaxis, :] - column_input[torch.newaxis, :, :]
    return (differences**2).mean(dim=2)
