from __future__ import annotations

import asyncio
import json
from datetime import date

import httpx
import pytest

from studyplanner.client.gateway_client import GatewayClient, GatewayError
from studyplanner.client.orchestrator import StudyFlow
from studyplanner.client.state import AppState, FlowState, InvalidTransition
from studyplanner.client.storage import LocalStore, SessionStore, load_app_state, save_app_state
from studyplanner.main import app
from studyplanner.schemas.results import Graded, Ungraded
from studyplanner.services import generation_service


PLAN = {
    "schedule": [
        {
            "subject_name": "Physics",
            "weekly_plan": [
                {"week": 1, "topic": "Kinematics", "tasks": ["Velocity", "Acceleration"]},
                {"week": 2, "topic": "Dynamics", "tasks": ["Newton's laws"]},
            ],
        }
    ],
    "syllabusText": "Physics: Kinematics, Dynamics",
}


def _mcq_test():
    mcqs = [{"question": f"Q{i}?", "options": ["A", "B", "C", "D"], "correct_answer": "C"} for i in range(20)]
    return {"subject": "Optics", "total_marks": 20, "time_limit_minutes": 10, "test_type": "MCQ", "mcqs": mcqs}


def _saq_test():
    qs = [{"question": f"Explain {i}", "marks": 2, "keywords": ["light", "angle"]} for i in range(10)]
    return {"subject": "Optics", "total_marks": 20, "time_limit_minutes": 20, "test_type": "SAQ", "short_questions": qs}


def _full_test():
    mcqs = [{"question": f"Q{i}?", "options": ["A", "B", "C", "D"], "correct_answer": "A"} for i in range(10)]
    short = [{"question": f"Short {i}", "marks": 5, "keywords": ["mass"]} for i in range(2)]
    long_ = [{"question": f"Long {i}", "marks": 15, "keywords": ["energy"]} for i in range(2)]
    return {"subject": "Physics", "total_marks": 50, "test_type": "mixed", "mcqs": mcqs,
            "short_questions": short, "long_questions": long_}


class Recorder:
    """MockTransport handler serving fixed JSON per path."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def paths(self, path):
        return [r for r in self.requests if r.url.path == path]

    async def __call__(self, request):
        self.requests.append(request)
        route = self.routes[request.url.path]
        if callable(route):
            return await route(request)
        status, body = route
        return httpx.Response(status, json=body)


def _flow(handler, tmp_path, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test/api")
    return StudyFlow(
        GatewayClient(client=client),
        session=SessionStore(),
        local=LocalStore(tmp_path / "local.json"),
        **kwargs,
    )


async def _submit_pdf(flow):
    return await flow.submit_syllabus(
        b"%PDF-1.4", filename="Physics.pdf", content_type="application/pdf", end_date=date(2030, 1, 1)
    )


def test_successful_syllabus_reaches_plan_ready_and_clears_checklist(tmp_path):
    rec = Recorder({"/api/generate": (200, PLAN)})
    flow = _flow(rec, tmp_path)
    flow.toggle_task(0, 1, 0)

    state = asyncio.run(_submit_pdf(flow))

    assert state.state == FlowState.PLAN_READY
    assert state.plan[0].subject_name == "Physics"
    assert state.syllabus_text == "Physics: Kinematics, Dynamics"
    assert load_app_state(flow.session).plan[0].weekly_plan[1].topic == "Dynamics"
    assert flow.is_task_done(0, 1, 0) is False
    assert flow.progress() == (0, 3)
    assert b"2030-01-01" in rec.requests[0].content


def test_failed_syllabus_goes_to_error_without_retry(tmp_path):
    rec = Recorder({"/api/generate": (500, {"error": "Model call failed", "code": "UPSTREAM_GENERATION_ERROR"})})
    flow = _flow(rec, tmp_path)

    state = asyncio.run(_submit_pdf(flow))

    assert state.state == FlowState.ERROR
    assert state.error == "Model call failed"
    assert state.plan is None
    assert len(rec.requests) == 1


def test_malformed_success_body_is_an_error(tmp_path):
    rec = Recorder({"/api/generate": (200, {"schedule": []})})
    flow = _flow(rec, tmp_path)
    assert asyncio.run(_submit_pdf(flow)).state == FlowState.ERROR


def test_checklist_survives_reload_but_plan_does_not(tmp_path):
    rec = Recorder({"/api/generate": (200, PLAN)})
    flow = _flow(rec, tmp_path)
    asyncio.run(_submit_pdf(flow))
    assert flow.toggle_task(0, 2, 0) is True

    reloaded = _flow(rec, tmp_path)

    assert reloaded.is_task_done(0, 2, 0) is True
    assert reloaded.is_task_done(0, 1, 0) is False
    assert reloaded.state == FlowState.IDLE
    assert reloaded.app.plan is None
    stored = json.loads((tmp_path / "local.json").read_text(encoding="utf-8"))
    assert json.loads(stored["syllabusProgress"]) == {"subject-0-week-2-task-0": True}


def test_mcq_test_is_scored_locally_without_grading_calls(tmp_path):
    rec = Recorder({"/api/quick-test": (200, _mcq_test())})
    flow = _flow(rec, tmp_path)

    async def scenario():
        await flow.request_quick_test("Optics", "MCQ")
        for i in range(20):
            flow.answer("mcqs", i, "C" if i < 15 else "B")
        return await flow.submit()

    state = asyncio.run(scenario())

    assert state.state == FlowState.RESULTS_READY
    assert state.results.summary.total == 15
    assert rec.paths("/api/grade") == []
    history = flow.history()
    assert len(history) == 1
    assert (history[0].subject, history[0].score, history[0].total_marks) == ("Optics (MCQ)", 15, 20)


def test_blank_saq_answers_score_zero_with_feedback(tmp_path, monkeypatch):
    model_calls = []
    monkeypatch.setattr(generation_service, "chat_json", lambda **kw: model_calls.append(kw) or {})
    monkeypatch.setattr(generation_service, "_generate", lambda prompt, **kw: _saq_test())

    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test/api")
    flow = StudyFlow(GatewayClient(client=client), session=SessionStore(), local=SessionStore())

    async def scenario():
        await flow.request_quick_test("Optics", "SAQ")
        result = await flow.submit()
        await client.aclose()
        return result

    state = asyncio.run(scenario())

    results = state.results.short_questions
    assert len(results) == 10
    assert all(isinstance(r, Graded) and r.score == 0 and r.feedback for r in results)
    assert state.results.summary.total == 0
    assert model_calls == []


def test_failed_grading_call_is_ungraded_and_does_not_block_others(tmp_path):
    async def grade(request):
        payload = json.loads(request.content)
        if payload["question"] == "Explain 3":
            return httpx.Response(500, json={"error": "Model call failed", "code": "UPSTREAM_GENERATION_ERROR"})
        return httpx.Response(200, json={"score": 2, "feedback": "Covers light and angle."})

    rec = Recorder({"/api/quick-test": (200, _saq_test()), "/api/grade": grade})
    flow = _flow(rec, tmp_path)

    async def scenario():
        await flow.request_quick_test("Optics", "SAQ")
        for i in range(10):
            flow.answer("short_questions", i, f"answer {i}")
        return await flow.submit()

    state = asyncio.run(scenario())

    results = state.results.short_questions
    assert isinstance(results[3], Ungraded)
    assert results[3].reason == "Model call failed"
    assert sum(isinstance(r, Graded) for r in results) == 9
    summary = state.results.summary
    assert summary.total is None
    assert summary.graded_total == 18
    assert flow.history()[0].score is None
    assert flow.history()[0].ungraded == 1


def test_full_test_uses_plan_text_and_grades_both_sections(tmp_path):
    async def grade(request):
        payload = json.loads(request.content)
        return httpx.Response(200, json={"score": payload["marks"] - 1, "feedback": "Nearly complete."})

    rec = Recorder({"/api/generate": (200, PLAN), "/api/test": (200, _full_test()), "/api/grade": grade})
    flow = _flow(rec, tmp_path)

    async def scenario():
        await _submit_pdf(flow)
        await flow.request_full_test("Physics")
        for i in range(10):
            flow.answer("mcqs", i, "A")
        for section in ("short_questions", "long_questions"):
            for i in range(2):
                flow.answer(section, i, "some answer")
        return await flow.submit()

    state = asyncio.run(scenario())

    sent = json.loads(rec.paths("/api/test")[0].content)
    assert sent == {"subject": "Physics", "syllabusText": "Physics: Kinematics, Dynamics"}
    assert len(rec.paths("/api/grade")) == 4
    assert state.results.summary.total == 10 + 4 + 4 + 14 + 14
    assert state.results.summary.total_marks == 50


def test_full_test_needs_a_plan(tmp_path):
    flow = _flow(Recorder({}), tmp_path)
    with pytest.raises(InvalidTransition):
        asyncio.run(flow.request_full_test("Physics"))


def test_double_submit_grades_once(tmp_path):
    async def grade(request):
        await asyncio.sleep(0)
        return httpx.Response(200, json={"score": 1, "feedback": "Partial."})

    rec = Recorder({"/api/quick-test": (200, _saq_test()), "/api/grade": grade})
    flow = _flow(rec, tmp_path)

    async def scenario():
        await flow.request_quick_test("Optics", "SAQ")
        first, second = await asyncio.gather(flow.submit(), flow.submit())
        third = await flow.submit()
        return first, second, third

    first, second, third = asyncio.run(scenario())

    assert first is second is third
    assert len(rec.paths("/api/grade")) == 10
    assert len(flow.history()) == 1


def test_timer_forces_submission_once(tmp_path):
    rec = Recorder({"/api/quick-test": (200, _mcq_test())})

    async def instant(_seconds):
        await asyncio.sleep(0)

    flow = _flow(rec, tmp_path, sleep=instant)

    async def scenario():
        await flow.request_quick_test("Optics", "MCQ")
        flow.answer("mcqs", 0, "C")
        timer = flow.start_timer()
        await timer
        return await flow.submit()

    state = asyncio.run(scenario())

    assert state.state == FlowState.RESULTS_READY
    assert flow.remaining_seconds == 0
    assert state.results.summary.total == 1
    assert len(flow.history()) == 1


def test_manual_submit_stops_the_timer(tmp_path):
    rec = Recorder({"/api/quick-test": (200, _mcq_test())})
    flow = _flow(rec, tmp_path)

    async def scenario():
        await flow.request_quick_test("Optics", "MCQ")
        timer = flow.start_timer()
        await asyncio.sleep(0)
        await flow.submit()
        await asyncio.gather(timer, return_exceptions=True)
        return timer

    timer = asyncio.run(scenario())
    assert timer.cancelled()
    assert len(flow.history()) == 1


def _reopen(flow, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test/api")
    return StudyFlow(GatewayClient(client=client), session=flow.session, local=flow.local)


def test_closing_mid_grading_rolls_back_to_answering(tmp_path):
    async def hang(request):
        await asyncio.sleep(3600)

    rec = Recorder({"/api/quick-test": (200, _saq_test()), "/api/grade": hang})
    flow = _flow(rec, tmp_path)

    async def scenario():
        await flow.request_quick_test("Optics", "SAQ")
        flow.answer("short_questions", 0, "Light bends")
        pending = asyncio.ensure_future(flow.submit())
        while flow.state != FlowState.GRADING:
            await asyncio.sleep(0)
        await flow.close()
        await asyncio.gather(pending, return_exceptions=True)

    asyncio.run(scenario())

    saved = load_app_state(flow.session)
    assert saved.state == FlowState.ANSWERING
    assert saved.answers.short_questions == {0: "Light bends"}
    assert flow.history() == []

    reopened = _reopen(flow, rec)
    assert reopened.state == FlowState.ANSWERING
    state = asyncio.run(reopened.request_quick_test("Optics", "SAQ"))
    assert state.state == FlowState.TEST_READY


def test_cancelled_syllabus_upload_can_be_resubmitted(tmp_path):
    async def hang(request):
        await asyncio.sleep(3600)

    rec = Recorder({"/api/generate": hang})
    flow = _flow(rec, tmp_path)

    async def scenario():
        pending = asyncio.ensure_future(_submit_pdf(flow))
        while not rec.requests:
            await asyncio.sleep(0)
        pending.cancel()
        await asyncio.gather(pending, return_exceptions=True)

    asyncio.run(scenario())
    assert flow.state == FlowState.IDLE
    assert load_app_state(flow.session).state == FlowState.IDLE

    rec.routes["/api/generate"] = (200, PLAN)
    state = asyncio.run(_submit_pdf(flow))
    assert state.state == FlowState.PLAN_READY


def test_in_flight_state_left_in_session_is_settled_on_load(tmp_path):
    rec = Recorder({"/api/quick-test": (200, _mcq_test())})
    flow = _flow(rec, tmp_path)
    asyncio.run(flow.request_quick_test("Optics", "MCQ"))
    flow.answer("mcqs", 3, "C")
    save_app_state(flow.session, flow.app.model_copy(update={"state": FlowState.GRADING}))

    reopened = _reopen(flow, rec)

    assert reopened.state == FlowState.ANSWERING
    assert reopened.app.answers.mcqs == {3: "C"}
    assert load_app_state(flow.session).state == FlowState.ANSWERING

    save_app_state(flow.session, AppState(state=FlowState.SUBMITTING))
    assert _reopen(flow, rec).state == FlowState.IDLE


def test_answer_validation(tmp_path):
    rec = Recorder({"/api/quick-test": (200, _mcq_test())})
    flow = _flow(rec, tmp_path)
    with pytest.raises(InvalidTransition):
        flow.answer("mcqs", 0, "C")

    asyncio.run(flow.request_quick_test("Optics", "MCQ"))
    with pytest.raises(IndexError):
        flow.answer("mcqs", 20, "C")
    with pytest.raises(ValueError):
        flow.answer("essays", 0, "C")
    flow.answer("mcqs", 0, "C")
    flow.answer("mcqs", 0, "D")
    assert flow.state == FlowState.ANSWERING
    assert flow.app.answers.mcqs == {0: "D"}


def test_gateway_error_carries_status_and_code():
    rec = Recorder({"/api/mcqs": (400, {"error": "Invalid request: topic", "code": "VALIDATION_ERROR"})})
    gateway = GatewayClient(client=httpx.AsyncClient(transport=httpx.MockTransport(rec), base_url="http://test/api"))

    with pytest.raises(GatewayError) as exc:
        asyncio.run(gateway.mcqs(""))
    assert exc.value.status_code == 400
    assert exc.value.code == "VALIDATION_ERROR"
