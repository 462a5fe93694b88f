"""Side-effect-free conflict prediction."""

from pullguard.predict.predictor import ConflictPredictor

__all__ = ["ConflictPredictor"]
