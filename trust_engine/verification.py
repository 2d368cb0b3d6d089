"""
Trust Engine - Verification Aggregator.

============================================================
PURPOSE
============================================================
Verifies claimed titled player credentials through four
independent checks, aggregated by arithmetic mean.

============================================================
CHECKS
============================================================
1. title_verification       1.0 recognized title, else 0.0
2. rating_verification      1.0 rating meets the title minimum, else 0.5
3. document_verification    0.8 with at least one document, else 0.0
4. experience_verification  1.0 with >= 2 years, else 0.6

A check passes when its score is >= 0.8.

============================================================
STATUS
============================================================
aggregate >= 0.8          -> VERIFIED
0.6 <= aggregate < 0.8    -> PENDING
aggregate < 0.6           -> REJECTED

A terminal result (verified / rejected) can only be
re-verified to the same status.

============================================================
"""

import logging
from typing import Callable, List, Optional, Tuple

from core.exceptions import StatusTransitionError

from .config import VerificationConfig
from .types import Check, CredentialClaim, VerificationResult, VerificationStatus


logger = logging.getLogger(__name__)


ADDITIONAL_STEPS: Tuple[str, ...] = (
    "Provide additional verification documents",
    "Complete identity verification process",
)


class VerificationAggregator:
    """Runs the credential checks and aggregates them."""

    def __init__(self, config: Optional[VerificationConfig] = None):
        self.config = config or VerificationConfig()
        self._checks: Tuple[Callable[[CredentialClaim], Check], ...] = (
            self.check_title,
            self.check_rating,
            self.check_documents,
            self.check_experience,
        )

    # --------------------------------------------------------
    # CHECKS
    # --------------------------------------------------------

    def _check(self, name: str, score: float, passed_detail: str, failed_detail: str) -> Check:
        passed = score >= self.config.check_pass_score
        return Check(
            name=name,
            score=score,
            passed=passed,
            detail=passed_detail if passed else failed_detail,
        )

    def check_title(self, claim: CredentialClaim) -> Check:
        recognized = claim.title in self.config.recognized_titles
        return self._check(
            "title_verification",
            1.0 if recognized else 0.0,
            "Title verified",
            "Invalid title",
        )

    def check_rating(self, claim: CredentialClaim) -> Check:
        # Unknown titles are held to the highest minimum
        minimum = self.config.minimum_rating(claim.title)
        return self._check(
            "rating_verification",
            1.0 if claim.rating >= minimum else self.config.rating_shortfall_score,
            "Rating verified",
            "Rating below minimum",
        )

    def check_documents(self, claim: CredentialClaim) -> Check:
        return self._check(
            "document_verification",
            self.config.document_score if claim.documents else 0.0,
            "Documents provided",
            "No documents provided",
        )

    def check_experience(self, claim: CredentialClaim) -> Check:
        experienced = claim.years_experience >= self.config.minimum_years_experience
        return self._check(
            "experience_verification",
            1.0 if experienced else self.config.limited_experience_score,
            "Experience verified",
            "Limited experience",
        )

    # --------------------------------------------------------
    # AGGREGATION
    # --------------------------------------------------------

    def status_for(self, aggregate_score: float) -> VerificationStatus:
        if aggregate_score >= self.config.verified_threshold:
            return VerificationStatus.VERIFIED
        if aggregate_score >= self.config.pending_threshold:
            return VerificationStatus.PENDING
        return VerificationStatus.REJECTED

    def next_steps(self, checks: Tuple[Check, ...], aggregate_score: float) -> Tuple[str, ...]:
        steps: List[str] = [
            f"Improve {check.name}: {check.detail}"
            for check in checks
            if check.score < self.config.check_pass_score
        ]
        if aggregate_score < self.config.verified_threshold:
            steps.extend(ADDITIONAL_STEPS)
        return tuple(steps)

    def verify(
        self,
        subject_id: str,
        claim: CredentialClaim,
        previous: Optional[VerificationResult] = None,
    ) -> VerificationResult:
        """
        Run all checks for a claim.

        Args:
            subject_id: Subject making the claim
            claim: The claimed credential
            previous: Prior result for the same subject, if any

        Returns:
            VerificationResult (equal for equal input)

        Raises:
            StatusTransitionError: previous result is terminal and
                the new status differs from it
        """
        checks = tuple(run(claim) for run in self._checks)
        aggregate = round(sum(c.score for c in checks) / len(checks), 6)
        status = self.status_for(aggregate)

        if previous is not None:
            ensure_transition(previous.status, status, subject_id)

        result = VerificationResult(
            subject_id=subject_id,
            claimed_title=claim.title,
            checks=checks,
            aggregate_score=aggregate,
            status=status,
            next_steps=self.next_steps(checks, aggregate),
        )

        logger.info(
            f"Verification {subject_id} claimed={claim.title} "
            f"score={aggregate:.3f} status={status.value}"
        )
        return result


def ensure_transition(
    current: VerificationStatus,
    new: VerificationStatus,
    subject_id: Optional[str] = None,
) -> None:
    """
    Allowed: pending -> any, terminal -> same terminal.

    Raises:
        StatusTransitionError: on any other change
    """
    if current.is_terminal and new != current:
        raise StatusTransitionError(current.value, new.value, subject_id)
