from .base import AbstractCalibrationStore
from .file import JsonFileCalibrationStore
from .memory import InMemoryCalibrationStore

__all__ = ["AbstractCalibrationStore", "InMemoryCalibrationStore", "JsonFileCalibrationStore"]
