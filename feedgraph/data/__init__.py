"""Training data containers."""

from .dataset import BasicTrainingSet, TrainingSet

__all__ = ["BasicTrainingSet", "TrainingSet"]
