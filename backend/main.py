"""
Mock Interview - FastAPI Backend

Serves a timed mock interview:
- Question generation from a candidate profile (external API)
- Fixed-length sequence of timed questions with auto-submit on expiry
- Typed answers or live speech-to-text (faster-whisper)
- Scoring handoff with a local fallback score
- Archive of completed interviews for the interviewer view
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from utils.config import config
from models.schemas import (
    DraftRequest,
    ReviseAnswerRequest,
    StartInterviewRequest,
    SubmitAnswerRequest,
)
from interview.controller import InterviewController
from interview.exceptions import (
    ArchiveError,
    InvalidStateError,
    QuestionSourceError,
    TranscriptionError,
)
from interview.runner import SessionRunner
from interview.scoring import SessionScorer
from services.client import api_client
from speech.transcriber import transcriber
from storage.archive import SessionArchive

logging.basicConfig(level=config.logging.level, format=config.logging.format)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

# ================================================================
# FastAPI App Initialization
# ================================================================

app = FastAPI(
    title="Mock Interview API",
    description="Timed mock interviews with question generation, speech input and scoring",
    version=VERSION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ================================================================
# Session Management
# ================================================================

# One interview per process; the interviewer view reads the archive
_archive: Optional[SessionArchive] = None
_runner: Optional[SessionRunner] = None


def get_archive() -> SessionArchive:
    """Get the durable store, creating it on first use."""
    global _archive
    if _archive is None:
        _archive = SessionArchive()
    return _archive


def get_runner() -> SessionRunner:
    """Get the session runner, creating the controller on first use."""
    global _runner
    if _runner is None:
        controller = InterviewController(
            question_source=api_client,
            scorer=SessionScorer(api_client),
            archive=get_archive(),
            transcriber=transcriber,
        )
        _runner = SessionRunner(controller)
    return _runner


@app.on_event("startup")
async def on_startup() -> None:
    get_runner().start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if _runner is not None:
        await _runner.stop()


# ================================================================
# Error Mapping
# ================================================================

@app.exception_handler(QuestionSourceError)
async def question_source_error(request: Request, exc: QuestionSourceError):
    return JSONResponse(
        status_code=502,
        content={
            "detail": f"Failed to generate questions: {exc}. Please try again.",
            "retryable": exc.retryable,
        },
    )


@app.exception_handler(InvalidStateError)
async def invalid_state_error(request: Request, exc: InvalidStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(TranscriptionError)
async def transcription_error(request: Request, exc: TranscriptionError):
    return JSONResponse(
        status_code=503,
        content={"detail": f"{exc}. Please type your answer instead."},
    )


@app.exception_handler(ArchiveError)
async def archive_error(request: Request, exc: ArchiveError):
    logger.error(f"Archive error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# ================================================================
# API Endpoints
# ================================================================

@app.get("/")
async def root(runner: SessionRunner = Depends(get_runner)):
    """Service info endpoint."""
    return {
        "status": "running",
        "version": VERSION,
        "service": "Mock Interview",
        "interview_state": runner.controller.state.value,
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


@app.post("/interview/start")
async def start_interview(request: StartInterviewRequest, runner: SessionRunner = Depends(get_runner)):
    """
    Start a new interview session.

    Args:
        request: Candidate profile, optional candidate ID, and whether to
            archive the interview being replaced

    Returns:
        Session info with the first question
    """
    session = await runner.start_interview(
        request.profile,
        candidate_id=request.candidate_id,
        archive_current=request.archive_current,
    )
    first = session.questions[0]

    return {
        "status": "Interview started",
        "session_id": session.session_id,
        "candidate_id": session.candidate_id,
        "total_questions": len(session.questions),
        "current_question": first.model_dump(mode="json"),
        "question_number": 1,
        "time_limit": first.time_limit_seconds,
    }


@app.get("/interview/status")
async def get_interview_status(runner: SessionRunner = Depends(get_runner)):
    """
    Get current interview status: state, question, countdown and score.
    """
    return await runner.call(runner.controller.get_status)


@app.get("/interview/question/{index}")
async def get_question(index: int, runner: SessionRunner = Depends(get_runner)):
    """Get a specific question of the current session."""
    session = await runner.call(runner.controller.snapshot)
    if session is None:
        raise HTTPException(
            status_code=404,
            detail="Interview session not found. Please start the interview first."
        )
    if not 0 <= index < len(session.questions):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid question index. Must be between 0 and {len(session.questions) - 1}"
        )

    return {
        "question": session.questions[index].model_dump(mode="json"),
        "question_number": index + 1,
        "total_questions": len(session.questions),
        "session_info": {
            "current_question_index": session.current_index,
            "answers_submitted": len(session.answers),
            "is_complete": session.is_complete,
        },
    }


@app.post("/interview/draft")
async def save_draft(request: DraftRequest, runner: SessionRunner = Depends(get_runner)):
    """Stage the typed answer; this is what a timeout records."""
    await runner.call(runner.controller.stage_text, request.text)
    return {"status": "Draft saved"}


@app.post("/interview/answer")
async def submit_answer(request: SubmitAnswerRequest, runner: SessionRunner = Depends(get_runner)):
    """
    Submit the answer for the current question.

    Duplicate submissions for a question that is already answered are
    acknowledged with accepted=false.
    """
    controller = runner.controller
    accepted = await runner.call(controller.submit, request.question_index, request.answer_text)
    status = await runner.call(controller.get_status)
    return {"accepted": accepted, **status}


@app.patch("/interview/answer/{index}")
async def revise_answer(index: int, request: ReviseAnswerRequest, runner: SessionRunner = Depends(get_runner)):
    """Edit the most recent answer (allowed once, before the interview ends)."""
    session = await runner.call(runner.controller.revise_answer, index, request.answer_text)
    return {"status": "Answer revised", "answer": session.answers[index].model_dump(mode="json")}


@app.post("/interview/voice/start")
async def start_voice(runner: SessionRunner = Depends(get_runner)):
    """Open a voice capture for the current question."""
    capture = await runner.call(runner.controller.begin_voice_capture)
    return {"status": "Recording", "capture_id": capture.capture_id}


@app.post("/interview/voice/chunk")
async def voice_chunk(file: UploadFile = File(...), runner: SessionRunner = Depends(get_runner)):
    """
    Feed an audio chunk to the open capture.

    Returns:
        The transcript so far and the last transcription error, if any
    """
    content_type = file.content_type or ""
    if "audio" not in content_type and "video" not in content_type and "webm" not in content_type:
        raise HTTPException(
            status_code=400,
            detail=f"File must be audio or video. Got: {content_type}"
        )

    chunk = await file.read()
    transcript, error = await runner.feed_audio(chunk)
    return {"transcript": transcript, "transcription_error": error}


@app.post("/interview/voice/stop")
async def stop_voice(runner: SessionRunner = Depends(get_runner)):
    """Finalize the voice capture and stage its transcript."""
    transcript = await runner.call(runner.controller.end_voice_capture)
    return {"transcript": transcript}


@app.get("/interview/unfinished")
async def unfinished_interview(
    candidate_id: Optional[str] = Query(None),
    archive: SessionArchive = Depends(get_archive),
):
    """Check for an interrupted interview (the welcome-back prompt)."""
    session = archive.load_progress(candidate_id)
    if session is None:
        return {"has_unfinished_session": False}

    return {
        "has_unfinished_session": True,
        "session_id": session.session_id,
        "candidate_id": session.candidate_id,
        "candidate_name": session.candidate_name,
        "answers_submitted": len(session.answers),
        "total_questions": len(session.questions),
    }


@app.post("/interview/resume")
async def resume_interview(
    candidate_id: Optional[str] = Query(None),
    runner: SessionRunner = Depends(get_runner),
):
    """Resume the interrupted interview at the question it was left on."""
    await runner.call(runner.controller.resume_from_store, candidate_id)
    return await runner.call(runner.controller.get_status)


@app.post("/interview/reset")
async def reset_interview(
    archive: bool = Query(False, description="Keep the unfinished interview in the archive"),
    runner: SessionRunner = Depends(get_runner),
):
    """
    Discard the current interview and start fresh.
    """
    session = await runner.call(runner.controller.abandon, archive)
    return {
        "status": "Interview reset successfully",
        "discarded_session_id": session.session_id if session else None,
        "archived": bool(archive and session and session.answers),
    }


# ================================================================
# Interviewer View
# ================================================================

@app.get("/interviews")
def list_interviews(
    include_abandoned: bool = Query(False),
    archive: SessionArchive = Depends(get_archive),
) -> Dict[str, Any]:
    """List archived interviews, newest first."""
    interviews = archive.list_completed_sessions(include_abandoned=include_abandoned)
    return {
        "count": len(interviews),
        "interviews": [
            {
                "id": item.id,
                "status": item.status,
                "saved_at": item.saved_at.isoformat(),
                "candidate_id": item.session.candidate_id,
                "candidate_name": item.session.candidate_name,
                "final_score": item.session.final_score,
                "answers_submitted": len(item.session.answers),
                "total_questions": len(item.session.questions),
            }
            for item in interviews
        ],
    }


@app.get("/interviews/{session_id}")
def get_interview(session_id: str, archive: SessionArchive = Depends(get_archive)):
    """Replay a saved interview."""
    item = archive.get_completed_session(session_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Interview {session_id} not found")
    return item.model_dump(mode="json")


@app.delete("/interviews/{session_id}")
def delete_interview(session_id: str, archive: SessionArchive = Depends(get_archive)):
    """Delete a saved interview."""
    if not archive.delete_completed_session(session_id):
        raise HTTPException(status_code=404, detail=f"Interview {session_id} not found")
    return {"status": "Interview deleted", "id": session_id}


@app.delete("/interviews")
def clear_interviews(archive: SessionArchive = Depends(get_archive)):
    """Delete every saved interview."""
    removed = archive.clear_completed_sessions()
    return {"status": "All interviews cleared", "removed": removed}


# ================================================================
# Main Entry Point
# ================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
