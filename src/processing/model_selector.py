"""
Chooses which models summarize a content item.
"""
import random
from typing import List, Optional, Sequence, Tuple

from core.entities import ModelConfig
from core.errors import ConfigurationError

ModelPair = Tuple[ModelConfig, ModelConfig]


class ModelPairSelector:
    """
    Picks an A/B pair from the configured pool.

    ``rotation`` walks consecutive non-overlapping pairs, wrapping modulo the
    pool size, so every model is used before any pair repeats. ``random``
    draws two distinct models.
    """

    def __init__(
        self,
        pool: Sequence[ModelConfig],
        policy: str = "random",
        rng: Optional[random.Random] = None,
    ):
        if policy not in ("random", "rotation"):
            raise ConfigurationError(f"Unknown model selection policy: {policy}")
        self.pool: List[ModelConfig] = list(pool)
        self.policy = policy
        self.rng = rng or random.Random()
        self._next_index = 0

    def _check_pool(self) -> None:
        if len(self.pool) < 2:
            raise ConfigurationError(
                f"Need at least 2 models in the pool for A/B comparison, got {len(self.pool)}",
                suggestion="Add models under 'models' in resources/config.yml.",
            )

    def select(self) -> ModelPair:
        if self.policy == "rotation":
            return self.next_rotation_pair()
        return self.random_pair()

    def next_rotation_pair(self) -> ModelPair:
        self._check_pool()
        size = len(self.pool)
        first = self._next_index % size
        second = (first + 1) % size
        self._next_index = (first + 2) % size
        return self._distinct(self.pool[first], self.pool[second])

    def random_pair(self) -> ModelPair:
        self._check_pool()
        shuffled = list(self.pool)
        self.rng.shuffle(shuffled)
        return self._distinct(shuffled[0], shuffled[1])

    def reset(self) -> None:
        self._next_index = 0

    @staticmethod
    def _distinct(model_a: ModelConfig, model_b: ModelConfig) -> ModelPair:
        if model_a.id == model_b.id:
            raise ConfigurationError(
                f"Model pool produced a non-distinct pair ({model_a.id})",
                suggestion="Model ids in the pool must be unique.",
            )
        return model_a, model_b
