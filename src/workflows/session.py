"""
Mutable state shared across pipeline cycles.
"""
import random
from dataclasses import dataclass, field
from typing import Dict, Optional

from ingestion.twitter import TimelineUser
from processing.model_selector import ModelPairSelector
from services.config import Config


@dataclass
class PipelineSession:
    """
    Owns the handle -> user cache and the model rotation pointer. Scope it
    to the process (CLI run, long-lived worker) or to a single request.
    """
    selector: ModelPairSelector
    user_cache: Dict[str, TimelineUser] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: Config, rng: Optional[random.Random] = None) -> "PipelineSession":
        return cls(
            selector=ModelPairSelector(
                config.get_all_models(),
                policy=config.selection_policy,
                rng=rng,
            )
        )
