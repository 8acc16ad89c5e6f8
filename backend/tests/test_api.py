"""
Tests for the HTTP API.
"""
import pytest
from fastapi.testclient import TestClient

import main
from interview.controller import InterviewController
from interview.exceptions import QuestionSourceError, TranscriptionError
from interview.runner import SessionRunner
from interview.scoring import SessionScorer

from tests.conftest import make_timing

PROFILE = {
    "name": "Ada Lovelace",
    "email": "ada@example.com",
    "phone": "not found",
    "skills": ["React"],
}


@pytest.fixture
def api(monkeypatch, question_source, scoring_service, archive, transcriber, clock, fallback):
    controller = InterviewController(
        question_source=question_source,
        scorer=SessionScorer(scoring_service, fallback),
        archive=archive,
        transcriber=transcriber,
        timing=make_timing(),
        clock=clock,
    )
    monkeypatch.setattr(main, "_archive", archive)
    monkeypatch.setattr(main, "_runner", SessionRunner(controller, tick_interval=3600))

    with TestClient(main.app) as client:
        client.controller = controller
        yield client


def start(api, **extra):
    response = api.post("/interview/start", json={"profile": PROFILE, "candidate_id": "CAND-1", **extra})
    assert response.status_code == 200
    return response.json()


class TestInterviewEndpoints:

    def test_health(self, api):
        assert api.get("/health").json() == {"status": "ok"}
        assert api.get("/").json()["interview_state"] == "not_started"

    def test_start(self, api):
        data = start(api)

        assert data["status"] == "Interview started"
        assert data["total_questions"] == 6
        assert data["question_number"] == 1
        assert data["time_limit"] == 20
        assert data["current_question"]["difficulty"] == "easy"

    def test_start_failure_is_retryable(self, api, question_source):
        question_source.error = QuestionSourceError("upstream down")

        response = api.post("/interview/start", json={"profile": PROFILE})
        assert response.status_code == 502
        assert response.json()["retryable"] is True
        assert api.get("/interview/status").json()["state"] == "not_started"

    def test_full_interview(self, api, archive):
        session_id = start(api)["session_id"]

        for index in range(6):
            response = api.post("/interview/answer", json={"question_index": index, "answer_text": f"Answer {index}"})
            assert response.status_code == 200
            assert response.json()["accepted"] is True

        status = api.get("/interview/status").json()
        assert status["state"] == "complete"
        assert status["final_score"] == 73

        listing = api.get("/interviews").json()
        assert listing["count"] == 1
        assert listing["interviews"][0]["id"] == session_id

        replay = api.get(f"/interviews/{session_id}").json()
        assert len(replay["session"]["answers"]) == 6

    def test_duplicate_answer_not_accepted(self, api):
        start(api)
        api.post("/interview/answer", json={"question_index": 0, "answer_text": "one"})

        response = api.post("/interview/answer", json={"question_index": 0, "answer_text": "again"})
        assert response.status_code == 200
        assert response.json()["accepted"] is False
        assert response.json()["answers_submitted"] == 1

    def test_out_of_order_answer_conflicts(self, api):
        start(api)
        response = api.post("/interview/answer", json={"question_index": 4, "answer_text": "skip"})
        assert response.status_code == 409

    def test_negative_index_rejected(self, api):
        start(api)
        response = api.post("/interview/answer", json={"question_index": -1})
        assert response.status_code == 422

    def test_draft_is_used_on_submit(self, api):
        start(api)
        api.post("/interview/draft", json={"text": "drafted"})
        api.post("/interview/answer", json={"question_index": 0})

        question = api.get("/interview/question/0").json()
        assert question["session_info"]["answers_submitted"] == 1
        assert api.controller.machine.answers[0].answer_text == "drafted"

    def test_question_lookup(self, api):
        assert api.get("/interview/question/0").status_code == 404
        start(api)
        assert api.get("/interview/question/9").status_code == 400
        assert api.get("/interview/question/2").json()["question"]["difficulty"] == "medium"

    def test_revise_answer(self, api):
        start(api)
        api.post("/interview/answer", json={"question_index": 0, "answer_text": "first"})

        response = api.patch("/interview/answer/0", json={"answer_text": "better"})
        assert response.status_code == 200
        assert response.json()["answer"]["revised"] is True
        assert api.patch("/interview/answer/0", json={"answer_text": "again"}).status_code == 409

    def test_voice_capture(self, api):
        start(api)
        assert api.post("/interview/voice/start").json()["capture_id"].startswith("capture-")

        response = api.post(
            "/interview/voice/chunk",
            files={"file": ("chunk.webm", b"closures capture scope", "audio/webm")},
        )
        assert response.json()["transcript"] == "closures capture scope"
        assert response.json()["transcription_error"] is None

        assert api.post("/interview/voice/stop").json()["transcript"] == "closures capture scope"
        assert api.get("/interview/status").json()["staged_text"] == "closures capture scope"

    def test_voice_chunk_reports_transcription_error(self, api, transcriber):
        start(api)
        api.post("/interview/voice/start")
        transcriber.error = TranscriptionError("mic failed")

        response = api.post(
            "/interview/voice/chunk",
            files={"file": ("chunk.webm", b"closures", "audio/webm")},
        )
        assert response.status_code == 200
        assert response.json()["transcript"] == ""
        assert "mic failed" in response.json()["transcription_error"]

    def test_voice_chunk_rejects_non_audio(self, api):
        start(api)
        api.post("/interview/voice/start")
        response = api.post(
            "/interview/voice/chunk",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400

    def test_reset_and_resume(self, api):
        start(api)
        api.post("/interview/answer", json={"question_index": 0, "answer_text": "one"})

        unfinished = api.get("/interview/unfinished", params={"candidate_id": "CAND-1"}).json()
        assert unfinished["has_unfinished_session"] is True
        assert unfinished["answers_submitted"] == 1

        resumed = api.post("/interview/resume", params={"candidate_id": "CAND-1"}).json()
        assert resumed["question_index"] == 1
        assert resumed["time_remaining"] == 20

        reset = api.post("/interview/reset", params={"archive": True}).json()
        assert reset["archived"] is True
        assert api.get("/interview/unfinished").json() == {"has_unfinished_session": False}
        assert api.get("/interviews", params={"include_abandoned": True}).json()["count"] == 1

    def test_resume_without_session_conflicts(self, api):
        assert api.post("/interview/resume").status_code == 409


class TestInterviewerView:

    def test_delete_interviews(self, api):
        session_id = start(api)["session_id"]
        for index in range(6):
            api.post("/interview/answer", json={"question_index": index, "answer_text": "x"})

        assert api.delete("/interviews/session-missing").status_code == 404
        assert api.delete(f"/interviews/{session_id}").json()["id"] == session_id
        assert api.get(f"/interviews/{session_id}").status_code == 404
        assert api.delete("/interviews").json()["removed"] == 0
