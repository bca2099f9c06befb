# fall_detection/fusion.py

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidConfiguration

DEFAULT_MODEL_WEIGHT = 0.7
DEFAULT_RULE_WEIGHT  = 0.3
DEFAULT_THRESHOLD    = 0.5   # combined-evidence alarm, p >= threshold


@dataclass(frozen=True)
class FusionResult:
    final_probability : float
    is_fall           : bool
    threshold         : float


class ProbabilityFusion:
    """
    Weighted late fusion of the sequence-model probability and the rule score.

        p_final = clamp(w_model * p_model + w_rule * p_rule, 0, 1)

    The weights must sum to 1. The fusion threshold is independent from the
    raw-classifier alarm threshold in SequenceClassifier.
    """

    def __init__(
        self,
        model_weight: float = DEFAULT_MODEL_WEIGHT,
        rule_weight: float = DEFAULT_RULE_WEIGHT,
        threshold: float = DEFAULT_THRESHOLD,
        logger: Optional[logging.Logger] = None,
    ):
        if not math.isclose(model_weight + rule_weight, 1.0, abs_tol=1e-6):
            raise InvalidConfiguration(
                f"Fusion weights must sum to 1.0, got {model_weight} + {rule_weight} "
                f"= {model_weight + rule_weight}"
            )
        if not 0.0 <= threshold <= 1.0:
            raise InvalidConfiguration(f"Fusion threshold must be in [0, 1], got {threshold}")

        self.model_weight = model_weight
        self.rule_weight = rule_weight
        self.threshold = threshold
        self._log = logger or logging.getLogger(__name__)

    def fuse(self, p_model: float, p_rule: float) -> float:
        p_final = self.model_weight * p_model + self.rule_weight * p_rule
        self._log.debug("Fusion: model=%.3f, rule=%.3f, final=%.3f", p_model, p_rule, p_final)
        return min(max(p_final, 0.0), 1.0)

    def is_fall_detected(self, p_final: float) -> bool:
        return p_final >= self.threshold

    def detect_fall(self, p_model: float, p_rule: float) -> bool:
        return self.is_fall_detected(self.fuse(p_model, p_rule))

    def evaluate(self, p_model: float, p_rule: float) -> FusionResult:
        p_final = self.fuse(p_model, p_rule)
        return FusionResult(
            final_probability = p_final,
            is_fall           = self.is_fall_detected(p_final),
            threshold         = self.threshold,
        )
