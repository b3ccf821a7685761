"""
Trust Evaluator

Scores a completion's evidence into a confidence value, decides whether a
spot-check proof is required and computes the trust score delta.

Signal weights (evidence present -> weight, else 0):
- health workout / steps / sleep: 0.9
- health mindfulness: 0 (no provider reports it yet)
- timer completion: 0.8
- low app switching (< 5 switches): 0.7
- location dwell: 0.6
- photo proof: 0.5 (photos are presumed gameable)

Trust delta:
- confidence >= 0.6: +0.5 (slow climb)
- 0.3 <= confidence < 0.6: 0
- confidence < 0.3: -1.0 (fast erosion)

Spot checks only apply below the confidence threshold. Users under trust
40 are sampled at 0.4, everyone else at 0.1.
"""

import logging
from typing import Optional

from levelup import config
from levelup.gamification.random_source import RandomSource, default_random_source
from levelup.models.completion import VerificationPayload, VerificationResult
from levelup.models.quest import Quest, VerificationSignal

logger = logging.getLogger(__name__)

HEALTH_SIGNAL_WEIGHT = 0.9
TIMER_SIGNAL_WEIGHT = 0.8
LOW_APP_SWITCHING_WEIGHT = 0.7
LOCATION_SIGNAL_WEIGHT = 0.6
PHOTO_SIGNAL_WEIGHT = 0.5

MIN_SLEEP_SECONDS = 3600
MAX_APP_SWITCHES = 5

# Confidence when a quest requires no signals
NO_SIGNAL_CONFIDENCE = 0.5
NEUTRAL_CONFIDENCE_FLOOR = 0.3

TRUST_GAIN = 0.5
TRUST_LOSS = -1.0

MIN_TRUST_SCORE = 0.0
MAX_TRUST_SCORE = 100.0


def score_signal(signal: VerificationSignal, payload: VerificationPayload) -> float:
    """
    Confidence weight contributed by one signal

    Args:
        signal: Required signal
        payload: Evidence bundle (any field may be missing)

    Returns:
        Weight in [0, 1]; 0 when the evidence is absent
    """
    health = payload.health_summary
    focus = payload.focus_session

    if signal == VerificationSignal.HEALTH_WORKOUT:
        if health and health.duration_seconds and health.duration_seconds > 0:
            return HEALTH_SIGNAL_WEIGHT
    elif signal == VerificationSignal.HEALTH_STEPS:
        if health and health.steps and health.steps > 0:
            return HEALTH_SIGNAL_WEIGHT
    elif signal == VerificationSignal.HEALTH_SLEEP:
        if health and health.duration_seconds and health.duration_seconds >= MIN_SLEEP_SECONDS:
            return HEALTH_SIGNAL_WEIGHT
    elif signal == VerificationSignal.TIMER_COMPLETION:
        if focus and focus.duration_seconds > 0:
            return TIMER_SIGNAL_WEIGHT
    elif signal == VerificationSignal.LOW_APP_SWITCHING:
        if focus and focus.app_switches < MAX_APP_SWITCHES:
            return LOW_APP_SWITCHING_WEIGHT
    elif signal == VerificationSignal.LOCATION_DWELL:
        if payload.location_hash:
            return LOCATION_SIGNAL_WEIGHT
    elif signal == VerificationSignal.PHOTO_PROOF:
        if payload.photo_reference:
            return PHOTO_SIGNAL_WEIGHT

    return 0.0


class TrustEvaluator:
    """
    Evidence scoring and trust bookkeeping.

    The only impure step is the spot-check draw, taken from the injected
    random source.
    """

    def __init__(
        self,
        rng: Optional[RandomSource] = None,
        confidence_threshold: Optional[float] = None,
        base_check_rate: Optional[float] = None,
        low_trust_check_rate: Optional[float] = None,
        low_trust_threshold: Optional[float] = None,
        weekly_decay: Optional[float] = None,
    ):
        self.rng = rng or default_random_source()
        self.confidence_threshold = (
            config.CONFIDENCE_THRESHOLD if confidence_threshold is None else confidence_threshold
        )
        self.base_check_rate = config.BASE_PROOF_CHECK_RATE if base_check_rate is None else base_check_rate
        self.low_trust_check_rate = (
            config.LOW_TRUST_PROOF_CHECK_RATE if low_trust_check_rate is None else low_trust_check_rate
        )
        self.low_trust_threshold = (
            config.LOW_TRUST_THRESHOLD if low_trust_threshold is None else low_trust_threshold
        )
        self.weekly_decay = config.WEEKLY_DECAY_AMOUNT if weekly_decay is None else weekly_decay

    def evaluate(
        self,
        quest: Quest,
        payload: Optional[VerificationPayload],
        current_trust_score: float,
    ) -> VerificationResult:
        """
        Score evidence for one completion

        Args:
            quest: Quest being completed
            payload: Evidence bundle, None for a manual completion
            current_trust_score: Trust before this completion

        Returns:
            VerificationResult with confidence, trust delta, proof flag
            and the signals that were met
        """
        payload = payload or VerificationPayload()
        signals = list(dict.fromkeys(quest.signals_required))

        if signals:
            weights = {signal: score_signal(signal, payload) for signal in signals}
            signals_verified = [signal for signal, weight in weights.items() if weight > 0]
            confidence = sum(weights.values()) / len(signals)
        else:
            # Nothing to corroborate: neither trusted nor distrusted
            signals_verified = []
            confidence = NO_SIGNAL_CONFIDENCE

        trust_delta = self.trust_delta_for(confidence)
        needs_proof = self.should_require_proof(confidence, current_trust_score)

        logger.debug(
            f"Verified quest {quest.id}: confidence={confidence:.2f}, "
            f"signals={len(signals_verified)}/{len(signals)}, "
            f"trust_delta={trust_delta:+.1f}, needs_proof={needs_proof}"
        )

        return VerificationResult(
            confidence=confidence,
            trust_delta=trust_delta,
            needs_proof=needs_proof,
            signals_verified=signals_verified,
        )

    def trust_delta_for(self, confidence: float) -> float:
        if confidence >= self.confidence_threshold:
            return TRUST_GAIN
        if confidence >= NEUTRAL_CONFIDENCE_FLOOR:
            return 0.0
        return TRUST_LOSS

    def check_rate_for(self, trust_score: float) -> float:
        if trust_score < self.low_trust_threshold:
            return self.low_trust_check_rate
        return self.base_check_rate

    def should_require_proof(self, confidence: float, trust_score: float) -> bool:
        """Confident completions are never checked; others are sampled"""
        if confidence >= self.confidence_threshold:
            return False
        return self.rng.random() < self.check_rate_for(trust_score)

    @staticmethod
    def update_trust_score(current: float, delta: float) -> float:
        return max(MIN_TRUST_SCORE, min(MAX_TRUST_SCORE, current + delta))

    def apply_weekly_decay(self, trust_score: float, completions_this_week: int) -> float:
        """
        Periodic decay for idle weeks

        Called by the owner of persisted state on a week boundary, never
        per completion.
        """
        if completions_this_week == 0:
            decayed = max(MIN_TRUST_SCORE, trust_score - self.weekly_decay)
            logger.info(f"Idle week: trust {trust_score:.1f} -> {decayed:.1f}")
            return decayed
        return trust_score
