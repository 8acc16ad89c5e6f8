"""
Scoring handoff for a finished interview.
Sends the transcript to the scoring service and validates the result,
substituting a local fallback when the service cannot be used.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from models.schemas import Answer, QuestionScore, ScoringResult, TranscriptEntry
from interview.exceptions import ScoringServiceError
from interview.policy import FallbackScoringPolicy
from utils.cleaning import FieldCleaner
from utils.config import config

logger = logging.getLogger(__name__)


class ScoringService(Protocol):
    def score_answers(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...


class SessionScorer:
    """
    Scores a completed transcript. Never raises for service failures.
    """

    def __init__(
        self,
        service: ScoringService,
        fallback: Optional[FallbackScoringPolicy] = None,
        technology: Optional[str] = None,
    ):
        self.service = service
        self.fallback = fallback or FallbackScoringPolicy()
        self.technology = technology or config.interview.technology

    def build_payload(self, transcript: Sequence[TranscriptEntry], candidate_name: Optional[str]) -> Dict[str, Any]:
        return {
            "candidate_info": {
                "name": candidate_name or "Unknown Candidate",
                "technology": self.technology,
            },
            "interview_data": [entry.model_dump(mode="json") for entry in transcript],
        }

    def score(
        self,
        transcript: Sequence[TranscriptEntry],
        answers: Sequence[Answer],
        candidate_name: Optional[str] = None,
    ) -> ScoringResult:
        """
        Score a finished interview.

        Args:
            transcript: Full transcript in question order
            answers: Recorded answers, used for the fallback score
            candidate_name: Candidate display name

        Returns:
            ScoringResult from the service, or the fallback result
        """
        payload = self.build_payload(transcript, candidate_name)
        try:
            raw = self.service.score_answers(payload)
            result = self.validate_result(raw)
        except ScoringServiceError as e:
            logger.warning(f"Scoring failed, using fallback score: {e}")
            return self.fallback_result(answers)

        logger.info(f"Scoring service returned overall score {result.overall_score}")
        return result

    def fallback_result(self, answers: Sequence[Answer]) -> ScoringResult:
        """Build the locally computed result."""
        return ScoringResult(
            overall_score=self.fallback.score(answers),
            summary=self.fallback.summary(len(answers)),
            is_fallback=True,
        )

    @classmethod
    def validate_result(cls, raw: Any) -> ScoringResult:
        """
        Validate and normalize a scoring response.
        Ensures scores are within valid ranges.

        Args:
            raw: Raw response body

        Returns:
            Validated ScoringResult

        Raises:
            ScoringServiceError: if the body has no usable overall score or
                a field has the wrong shape
        """
        try:
            return cls._build_result(raw)
        except (TypeError, ValueError, AttributeError) as e:
            raise ScoringServiceError(f"Malformed scoring response: {e}") from e

    @classmethod
    def _build_result(cls, raw: Any) -> ScoringResult:
        if not isinstance(raw, dict):
            raise ScoringServiceError("Scoring response is not an object")

        final = raw.get("final_score")
        overall = final.get("overall_score") if isinstance(final, dict) else raw.get("overall_score")
        if overall is None:
            raise ScoringServiceError("Scoring response has no overall score")

        overall_score = FieldCleaner.clamp(overall, 0, 100, default=-1)
        if overall_score < 0:
            raise ScoringServiceError(f"Scoring response has a non-numeric overall score: {overall!r}")

        raw_scores = raw.get("question_scores") or raw.get("per_question") or []
        per_question: List[QuestionScore] = []
        if isinstance(raw_scores, list):
            per_question = [cls._question_score(item) for item in raw_scores if isinstance(item, dict)]

        summary = FieldCleaner.absent_if_sentinel(raw.get("overall_feedback") or raw.get("summary"))
        return ScoringResult(
            overall_score=int(round(overall_score)),
            summary=summary or "Interview completed.",
            per_question=per_question,
            recommendation=FieldCleaner.absent_if_sentinel(raw.get("recommendation")),
            strengths_summary=FieldCleaner.clean_list(raw.get("strengths_summary")),
            areas_for_improvement=FieldCleaner.clean_list(raw.get("areas_for_improvement")),
        )

    @staticmethod
    def _question_score(item: Dict[str, Any]) -> QuestionScore:
        score = item.get("total_score", item.get("content_score", item.get("score")))
        question_id = item.get("question_id")
        try:
            question_id = int(question_id) if question_id is not None else None
        except (TypeError, ValueError):
            question_id = None

        return QuestionScore(
            question_id=question_id,
            score=FieldCleaner.clamp(score, 0, 100, default=0),
            feedback=FieldCleaner.absent_if_sentinel(item.get("feedback")) or "",
            strengths=FieldCleaner.clean_list(item.get("strengths")),
            weaknesses=FieldCleaner.clean_list(item.get("weaknesses")),
            key_points_covered=FieldCleaner.clean_list(item.get("key_points_covered")),
            key_points_missed=FieldCleaner.clean_list(item.get("key_points_missed")),
        )
