"""
HTTP client for the external question generation and scoring API.
Handles retries, response validation and conversion into core types.
"""
import time
import logging
from typing import Any, Dict, List, Optional

import requests

from models.schemas import CandidateProfile, Difficulty, Question
from interview.exceptions import QuestionSourceError, ScoringServiceError
from interview.policy import TimingPolicy
from utils.config import config
from utils.cleaning import FieldCleaner

logger = logging.getLogger(__name__)


class ServiceUnavailable(Exception):
    """Raised by _make_request when every attempt failed."""


class InterviewApiClient:
    """
    Client for the /generate-questions and /score-answers endpoints.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timing: Optional[TimingPolicy] = None,
        http: Any = None,
    ):
        self.base_url = base_url or config.service.base_url
        self.questions_url = f"{self.base_url}{config.service.questions_endpoint}"
        self.scoring_url = f"{self.base_url}{config.service.scoring_endpoint}"
        self.timeout = config.service.timeout
        self.max_retries = config.service.max_retries
        self.backoff = config.service.backoff_seconds
        self.timing = timing or TimingPolicy()
        self.http = http or requests
        logger.info(f"Interview API client initialized: {self.base_url} (timeout={self.timeout}s)")

    def _make_request(self, url: str, payload: Dict[str, Any]) -> Any:
        """Make HTTP request to the API with retries."""
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                response = self.http.post(url, json=payload, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
            except requests.exceptions.Timeout as e:
                last_error = e
                logger.warning(f"Timeout calling {url} (attempt {attempt + 1})")
            except requests.exceptions.HTTPError as e:
                last_error = e
                status = e.response.status_code if e.response is not None else None
                logger.warning(f"HTTP {status} from {url} (attempt {attempt + 1})")
                if status is not None and 400 <= status < 500:
                    break
            except ValueError as e:
                # Body was not JSON
                last_error = e
                break
            except requests.exceptions.RequestException as e:
                last_error = e
                logger.warning(f"Request to {url} failed (attempt {attempt + 1}): {e}")

            if attempt < self.max_retries:
                time.sleep(self.backoff * (attempt + 1))

        raise ServiceUnavailable(f"{url} failed after {attempt + 1} attempts: {last_error}")

    # ========================================
    # Question Source
    # ========================================

    def generate_questions(self, profile: CandidateProfile) -> List[Question]:
        """
        Generate the ordered question list for a candidate.

        Args:
            profile: Candidate profile extracted from the resume

        Returns:
            Non-empty list of validated questions, in the order received

        Raises:
            QuestionSourceError: if the API fails or returns no usable question
        """
        logger.info(f"Requesting questions for {profile.name or 'unnamed candidate'}")
        try:
            data = self._make_request(self.questions_url, profile.to_parsed_resume())
        except ServiceUnavailable as e:
            raise QuestionSourceError(str(e)) from e

        raw_questions = data.get("questions") if isinstance(data, dict) else data
        if not isinstance(raw_questions, list):
            raise QuestionSourceError("Question source returned no question list")

        try:
            questions = self.parse_questions(raw_questions)
        except (TypeError, ValueError, AttributeError) as e:
            raise QuestionSourceError(f"Question source returned malformed questions: {e}") from e
        if not questions:
            raise QuestionSourceError("Question source returned an empty question list")

        logger.info(f"Received {len(questions)} questions")
        return questions

    def parse_questions(self, raw_questions: List[Any]) -> List[Question]:
        """Validate raw generated questions, dropping unusable entries."""
        questions = []
        for position, raw in enumerate(raw_questions):
            if not isinstance(raw, dict):
                logger.warning(f"Dropping malformed question at position {position}")
                continue

            text = FieldCleaner.absent_if_sentinel(raw.get("question") or raw.get("text"))
            if not text:
                logger.warning(f"Dropping question {position} with no text")
                continue

            try:
                question_id = int(raw.get("id", position + 1))
            except (TypeError, ValueError):
                question_id = position + 1

            difficulty = Difficulty.parse(raw.get("difficulty"))
            try:
                question = Question(
                    id=question_id,
                    text=text,
                    difficulty=difficulty,
                    category=FieldCleaner.absent_if_sentinel(raw.get("category")) or "general",
                    expected_topics=tuple(FieldCleaner.clean_list(raw.get("expected_topics"))),
                    time_limit_seconds=self.timing.time_limit_for(difficulty),
                )
            except ValueError as e:
                logger.warning(f"Dropping invalid question {position}: {e}")
                continue
            questions.append(question)
        return questions

    # ========================================
    # Scoring Service
    # ========================================

    def score_answers(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send the interview transcript for scoring.

        Args:
            payload: {"candidate_info": {...}, "interview_data": [...]}

        Returns:
            Raw scoring response body

        Raises:
            ScoringServiceError: if the API fails or the body is not an object
        """
        logger.info(f"Sending {len(payload.get('interview_data', []))} answers for scoring")
        try:
            data = self._make_request(self.scoring_url, payload)
        except ServiceUnavailable as e:
            raise ScoringServiceError(str(e)) from e

        if not isinstance(data, dict):
            raise ScoringServiceError("Scoring service returned a non-object body")
        return data

    def health_check(self) -> bool:
        """Check if the API is responding."""
        try:
            response = self.http.get(f"{self.base_url}/health", timeout=5)
            return response.ok
        except requests.exceptions.RequestException:
            return False


# Global client instance
api_client = InterviewApiClient()
