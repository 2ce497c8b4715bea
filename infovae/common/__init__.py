"""This module contains functionalities that are reused by the different autoencoder variants.

This mostly concerns the "Trainer" class and various training functionalities (such as checkpointing or the loss log)
on one hand, and a bunch of general utility functions on the other.
"""
from .training import Checkpointer, LossLog, TrainerBase, make_optimizers
from .utils import count_parameters, interleave, pairwise_mean_squares, squared_distances, sum_except
