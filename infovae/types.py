"""This module uses jaxtyping to add various more specific tensor types."""
from typing import TypeAlias, TypeVar, Union

from jaxtyping import Float
from torch import Tensor


ImageFloat: TypeAlias = Float[Tensor, "c h w"]
ImageBatchFloat: TypeAlias = Float[Tensor, "batch c h w"]

TabularFloat: TypeAlias = Float[Tensor, "c"]
TabularBatchFloat: TypeAlias = Float[Tensor, "batch c"]

DataFloat = TypeVar("DataFloat", ImageFloat, TabularFloat)
DataBatchFloat = TypeVar("DataBatchFloat", ImageBatchFloat, TabularBatchFloat)

ScalarFloat: TypeAlias = Float[Tensor, ""]
VectorBatchFloat: TypeAlias = Float[Tensor, "batch"]

LabelBatchFloat = Union[DataBatchFloat, TabularBatchFloat, VectorBatchFloat]

KernelMatrixFloat: TypeAlias = Float[Tensor, "b1 b2"]
