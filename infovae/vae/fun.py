import torch
from torch.utils.data import DataLoader

from .model import VAEGauss
from ..types import DataBatchFloat, LabelBatchFloat, TabularBatchFloat


def check_code_usage(model: VAEGauss,
                     dataloader: DataLoader[tuple[DataBatchFloat, LabelBatchFloat]]) -> TabularBatchFloat:
    """For each code dimension, see how much it diverges from a standard normal.
    
    This is a proxy for how much information this dimension contains. A code dimension that is always near standard
    normal for all inputs (indicated by low KL) contains little to no information about what the input was. The larger
    the average divergence, the more informative this dimension tends to be. With a strong ELBO regularizer, it is
    common to see several dimensions collapse to the prior this way.

    Parameters:
        model: VAE-like model that returns Gaussian parameters.
        dataloader: Provides the dataset to get distributions for.
    
    Return:
        Matrix showing KL-divergence for each input in the dataloader and each dimension.
    """
    device = next(model.parameters()).device
    all_klds = []
    with torch.inference_mode():
        for input_batch, _ in dataloader:
            means, log_variances = model.encoding_parameters(input_batch.to(device))
            all_klds.append(0.5 * (means**2 - 1 + torch.exp(log_variances) - log_variances))
    return torch.cat(all_klds, dim=0)
