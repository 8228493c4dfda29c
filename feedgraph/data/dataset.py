"""Random-access training data consumed by the gradient and Jacobian passes."""

from __future__ import annotations

from typing import Iterator, Protocol, Sequence

import numpy as np

from ..core.types import Array, TrainingPair


class TrainingSet(Protocol):
    """Indexable collection of ``(input, ideal)`` records."""

    @property
    def count(self) -> int: ...

    @property
    def input_size(self) -> int: ...

    @property
    def ideal_size(self) -> int: ...

    def get_record(self, index: int) -> TrainingPair: ...


class BasicTrainingSet:
    """In-memory training set backed by two 2-D arrays.

    A flat sequence is read as one single-feature sample per entry. An empty
    set keeps the widths given by ``input_size``/``ideal_size`` (zero when
    omitted) until the first :meth:`add` fixes them.
    """

    def __init__(
        self,
        inputs: Sequence[Sequence[float]] | Array = (),
        ideals: Sequence[Sequence[float]] | Array = (),
        *,
        input_size: int = 0,
        ideal_size: int = 0,
    ) -> None:
        self.inputs = _as_matrix(inputs, input_size)
        self.ideals = _as_matrix(ideals, ideal_size)
        if self.inputs.shape[0] != self.ideals.shape[0]:
            raise ValueError(
                f"Got {self.inputs.shape[0]} inputs but {self.ideals.shape[0]} ideals"
            )

    @property
    def count(self) -> int:
        return int(self.inputs.shape[0])

    @property
    def input_size(self) -> int:
        return int(self.inputs.shape[1])

    @property
    def ideal_size(self) -> int:
        return int(self.ideals.shape[1])

    def add(self, input: Sequence[float] | Array, ideal: Sequence[float] | Array) -> None:
        """Append one record; its widths must match the records already held."""

        row_in = np.asarray(input, dtype=np.float64).reshape(1, -1)
        row_ideal = np.asarray(ideal, dtype=np.float64).reshape(1, -1)
        self.inputs = _append_row(self.inputs, row_in, "input")
        self.ideals = _append_row(self.ideals, row_ideal, "ideal")

    def get_record(self, index: int) -> TrainingPair:
        if not 0 <= index < self.count:
            raise IndexError(f"Record {index} out of range for {self.count} samples")
        return TrainingPair(input=self.inputs[index].copy(), ideal=self.ideals[index].copy())

    def __len__(self) -> int:
        return self.count

    def __iter__(self) -> Iterator[TrainingPair]:
        for index in range(self.count):
            yield self.get_record(index)


def _as_matrix(values: Sequence[Sequence[float]] | Array, width: int) -> Array:
    array = np.asarray(values, dtype=np.float64)
    if array.size == 0:
        return np.zeros((0, int(width)), dtype=np.float64)
    if array.ndim == 1:
        return array.reshape(-1, 1)
    if array.ndim != 2:
        raise ValueError("inputs and ideals must be two dimensional")
    return array.copy()


def _append_row(matrix: Array, row: Array, label: str) -> Array:
    if matrix.shape[0] == 0 and matrix.shape[1] in (0, row.shape[1]):
        return row.copy()
    if row.shape[1] != matrix.shape[1]:
        raise ValueError(
            f"Record {label} has {row.shape[1]} values, training set holds {matrix.shape[1]}"
        )
    return np.vstack([matrix, row])


__all__ = ["BasicTrainingSet", "TrainingSet"]
