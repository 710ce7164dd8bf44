# config.py

from dataclasses import dataclass, field, asdict, fields
from enum import Enum
from typing import Tuple
import json
import math
import numbers
import os

# Define a sensible default for thread count, using system core count
DEFAULT_NUM_WORKERS = max(1, (os.cpu_count() or 2) - 1)

# Luminance weight presets (R, G, B)
PERCEPTUAL_WEIGHTS: Tuple[float, float, float] = (0.299, 0.587, 0.114)
UNIFORM_WEIGHTS: Tuple[float, float, float] = (0.333, 0.333, 0.333)

WEIGHT_PRESETS = {
    "perceptual": PERCEPTUAL_WEIGHTS,
    "uniform": UNIFORM_WEIGHTS,
}

DEFAULT_EDGE_THRESHOLD = 0.05
DEFAULT_PASS_COUNT = 3


class InvalidConfigError(ValueError):
    """Raised when a FilterConfig cannot drive a filter run."""


class BlendPolicy(str, Enum):
    WEIGHTED_NEIGHBOR_AVERAGE = "weighted_neighbor_average"
    SIGMOID_CENTER_BLEND = "sigmoid_center_blend"

    @property
    def code(self) -> int:
        """Integer tag handed to the JIT kernels, which cannot take enums."""
        return _POLICY_CODES[self]


_POLICY_CODES = {
    BlendPolicy.WEIGHTED_NEIGHBOR_AVERAGE: 0,
    BlendPolicy.SIGMOID_CENTER_BLEND: 1,
}


@dataclass(frozen=True)
class FilterConfig:
    """
    Immutable parameters for one filter run.
    Values are checked in __post_init__; anything that cannot drive a run
    raises InvalidConfigError.
    """
    luminance_weights: Tuple[float, float, float] = PERCEPTUAL_WEIGHTS
    edge_threshold: float = DEFAULT_EDGE_THRESHOLD
    pass_count: int = DEFAULT_PASS_COUNT
    blend_policy: BlendPolicy = BlendPolicy.WEIGHTED_NEIGHBOR_AVERAGE

    # False: luminance is computed once from the input and reused by every pass.
    recompute_luminance_per_pass: bool = False
    # Strict variant of the weighted average: floor sample weights at 0.
    clamp_negative_weights: bool = False

    use_numba_jit: bool = True
    thread_count: int = field(default=DEFAULT_NUM_WORKERS)

    def __post_init__(self):
        try:
            weights = tuple(float(w) for w in self.luminance_weights)
        except (TypeError, ValueError) as e:
            raise InvalidConfigError(f"luminance_weights must be three numbers: {e}") from e
        if len(weights) != 3:
            raise InvalidConfigError(f"luminance_weights must have 3 components, got {len(weights)}.")
        if any(not math.isfinite(w) or w < 0.0 for w in weights):
            raise InvalidConfigError(f"luminance_weights must be finite and non-negative, got {weights}.")
        if all(w == 0.0 for w in weights):
            raise InvalidConfigError("luminance_weights are all zero; every pixel would have luminance 0.")
        object.__setattr__(self, "luminance_weights", weights)

        try:
            threshold = float(self.edge_threshold)
        except (TypeError, ValueError) as e:
            raise InvalidConfigError(f"edge_threshold must be a number: {e}") from e
        if not math.isfinite(threshold):
            raise InvalidConfigError(f"edge_threshold must be finite, got {threshold}.")
        object.__setattr__(self, "edge_threshold", threshold)

        if isinstance(self.pass_count, bool) or not isinstance(self.pass_count, numbers.Integral):
            raise InvalidConfigError(f"pass_count must be an integer, got {self.pass_count!r}.")
        if self.pass_count < 0:
            raise InvalidConfigError(f"pass_count must not be negative, got {self.pass_count}.")
        object.__setattr__(self, "pass_count", int(self.pass_count))

        try:
            policy = BlendPolicy(self.blend_policy)
        except ValueError as e:
            raise InvalidConfigError(f"Unknown blend policy '{self.blend_policy}'.") from e
        object.__setattr__(self, "blend_policy", policy)

        try:
            thread_count = int(self.thread_count)
        except (TypeError, ValueError) as e:
            raise InvalidConfigError(f"thread_count must be an integer: {e}") from e
        if thread_count < 1:
            raise InvalidConfigError(f"thread_count must be at least 1, got {thread_count}.")
        object.__setattr__(self, "thread_count", thread_count)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["luminance_weights"] = list(self.luminance_weights)
        data["blend_policy"] = self.blend_policy.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FilterConfig":
        field_map = {f.name: f for f in fields(cls)}
        kwargs = {}

        for key, value in data.items():
            if key not in field_map:
                print(f"Warning: Unrecognized config key '{key}' found in loaded data. Skipping.")
                continue
            field_obj = field_map[key]
            # Booleans may come back from hand-edited files as strings
            if field_obj.type is bool and isinstance(value, str):
                value = value.lower() in ('true', '1', 't', 'y')
            if key == "luminance_weights" and isinstance(value, str):
                if value.lower() not in WEIGHT_PRESETS:
                    raise InvalidConfigError(f"Unknown luminance weight preset '{value}'.")
                value = WEIGHT_PRESETS[value.lower()]
            kwargs[key] = value

        return cls(**kwargs)

    def save(self, filepath: str):
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=4)

    @classmethod
    def load(cls, filepath: str) -> "FilterConfig":
        if not os.path.exists(filepath):
            print(f"Config file not found: {filepath}. Creating default config and saving it.")
            default_config = cls()
            try:
                default_config.save(filepath)
            except OSError as e:
                print(f"Error saving default config to {filepath}: {e}")
            return default_config

        try:
            with open(filepath, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            print(f"Error decoding JSON from config file '{filepath}': {e}. Using default config.")
            return cls()
        return cls.from_dict(data)
