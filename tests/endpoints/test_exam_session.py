from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.services.exam_attempt import exam_attempt_service


def _start(client, exam_id, headers, json=None):
    response = client.post(f"/exams/{exam_id}/session", headers=headers, json=json)
    assert response.status_code == 200, response.text
    return response.json()["data"]


class TestSessionLifecycle:
    def test_start_session(self, client: TestClient, auth_headers, jft_exam):
        exam, questions = jft_exam
        view = _start(client, exam.id, auth_headers())
        assert view["phase"] == "in_section"
        assert view["current_section"] == 1
        assert view["section_title"] == "Script and Vocabulary"
        assert view["time_remaining"] == 3600
        assert view["current_question"]["id"] == questions[0].id
        assert "correct_answer" not in view["current_question"]
        assert view["section_question_ids"] == [questions[0].id, questions[1].id]

    def test_start_unknown_exam(self, client: TestClient, auth_headers):
        response = client.post("/exams/4040/session", headers=auth_headers())
        assert response.status_code == 404

    def test_get_session_without_attempt(self, client: TestClient, auth_headers, jft_exam):
        exam, _ = jft_exam
        response = client.get(f"/exams/{exam.id}/session", headers=auth_headers())
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    def test_get_session_reports_time(self, client: TestClient, auth_headers, jft_exam, clock):
        exam, _ = jft_exam
        _start(client, exam.id, auth_headers())
        clock.advance(seconds=75)
        response = client.get(f"/exams/{exam.id}/session", headers=auth_headers())
        assert response.json()["data"]["time_remaining"] == 3600 - 75

    def test_start_with_local_snapshot(self, client: TestClient, auth_headers, jft_exam):
        exam, questions = jft_exam
        _start(client, exam.id, auth_headers())
        snapshot = {"answers": {str(questions[0].id): "C"}, "revision": 4}
        view = _start(client, exam.id, auth_headers(), json={"local_snapshot": snapshot})
        assert view["answers"] == {str(questions[0].id): "C"}
        assert view["current_index"] == 1

    def test_start_after_submission_is_refused(self, client: TestClient, auth_headers, jft_exam, db_session: Session, clock):
        exam, _ = jft_exam
        attempt = exam_attempt_service.create_attempt(db_session, exam.id, "candidate-1", started_at=clock.now())
        exam_attempt_service.submit_attempt(db_session, attempt.id, submitted_at=clock.now())
        response = client.post(f"/exams/{exam.id}/session", headers=auth_headers("candidate-1"))
        assert response.status_code == 409
        assert response.json()["error"]["message"] == "You have already attempted this exam."


class TestSessionActions:
    def test_select_answer(self, client: TestClient, auth_headers, jft_exam):
        exam, questions = jft_exam
        _start(client, exam.id, auth_headers())
        response = client.post(
            f"/exams/{exam.id}/session/answers",
            headers=auth_headers(),
            json={"question_id": questions[0].id, "option": "B"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Answer recorded"
        assert body["data"]["applied"] is True
        assert body["data"]["answers"] == {str(questions[0].id): "B"}

    def test_illegal_action_is_a_no_op(self, client: TestClient, auth_headers, jft_exam):
        exam, questions = jft_exam
        _start(client, exam.id, auth_headers())
        response = client.post(
            f"/exams/{exam.id}/session/answers",
            headers=auth_headers(),
            json={"question_id": questions[2].id, "option": "A"},
        )
        assert response.status_code == 200
        assert response.json()["data"]["applied"] is False
        assert response.json()["data"]["answers"] == {}

    def test_flag_toggle(self, client: TestClient, auth_headers, jft_exam):
        exam, questions = jft_exam
        _start(client, exam.id, auth_headers())
        response = client.post(f"/exams/{exam.id}/session/flags/{questions[1].id}", headers=auth_headers())
        assert response.json()["data"]["flagged_questions"] == [questions[1].id]

    def test_navigation(self, client: TestClient, auth_headers, jft_exam):
        exam, questions = jft_exam
        _start(client, exam.id, auth_headers())
        url = f"/exams/{exam.id}/session/navigate"
        view = client.post(url, headers=auth_headers(), json={"action": "next"}).json()["data"]
        assert view["current_index"] == 1
        view = client.post(url, headers=auth_headers(), json={"action": "jump", "index": 0}).json()["data"]
        assert view["current_question"]["id"] == questions[0].id
        view = client.post(url, headers=auth_headers(), json={"action": "previous"}).json()["data"]
        assert view["applied"] is False

    def test_jump_needs_index(self, client: TestClient, auth_headers, jft_exam):
        exam, _ = jft_exam
        _start(client, exam.id, auth_headers())
        response = client.post(f"/exams/{exam.id}/session/navigate", headers=auth_headers(), json={"action": "jump"})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_finish_section_flow(self, client: TestClient, auth_headers, jft_exam, db_session: Session):
        exam, questions = jft_exam
        _start(client, exam.id, auth_headers())
        client.post(
            f"/exams/{exam.id}/session/answers",
            headers=auth_headers(),
            json={"question_id": questions[0].id, "option": "A"},
        )

        view = client.post(f"/exams/{exam.id}/session/finish-section", headers=auth_headers()).json()["data"]
        assert view["pending_confirmation"] is True
        view = client.post(f"/exams/{exam.id}/session/finish-section/cancel", headers=auth_headers()).json()["data"]
        assert view["pending_confirmation"] is False
        assert view["current_section"] == 1

        client.post(f"/exams/{exam.id}/session/finish-section", headers=auth_headers())
        view = client.post(f"/exams/{exam.id}/session/finish-section/confirm", headers=auth_headers()).json()["data"]
        assert view["phase"] == "section_transition"
        assert view["current_section"] == 2
        assert view["current_question"] is None

        # Finishing a section flushes straight away.
        attempt = exam_attempt_service.get_attempt(db_session, exam.id, "candidate-1")
        db_session.refresh(attempt)
        assert attempt.section_finished_json["1"] is True
        assert attempt.answers_json == {str(questions[0].id): "A"}

        view = client.post(f"/exams/{exam.id}/session/continue", headers=auth_headers()).json()["data"]
        assert view["phase"] == "in_section"
        assert view["current_question"]["id"] == questions[2].id

    def test_audio_cap(self, client: TestClient, auth_headers, jft_exam):
        exam, questions = jft_exam
        _start(client, exam.id, auth_headers())
        for _ in range(2):
            client.post(f"/exams/{exam.id}/session/finish-section", headers=auth_headers())
            client.post(f"/exams/{exam.id}/session/finish-section/confirm", headers=auth_headers())
            client.post(f"/exams/{exam.id}/session/continue", headers=auth_headers())

        audio_id = questions[4].id
        url = f"/exams/{exam.id}/session/audio/{audio_id}/play"
        applied = [client.post(url, headers=auth_headers()).json()["data"]["applied"] for _ in range(3)]
        assert applied == [True, True, False]
        view = client.get(f"/exams/{exam.id}/session", headers=auth_headers()).json()["data"]
        assert view["audio_play_count"] == {str(audio_id): 2}
        assert view["is_listening_section"] is True
        assert view["can_jump"] is False


class TestFlushAndSubmit:
    def test_flush_is_accepted(self, client: TestClient, auth_headers, jft_exam, db_session: Session):
        exam, questions = jft_exam
        _start(client, exam.id, auth_headers())
        client.post(
            f"/exams/{exam.id}/session/answers",
            headers=auth_headers(),
            json={"question_id": questions[1].id, "option": "D"},
        )
        response = client.post(f"/exams/{exam.id}/session/flush", headers=auth_headers(), json={"reason": "hidden"})
        assert response.status_code == 202
        assert response.json()["data"] == {"reason": "hidden", "queued": True}

        attempt = exam_attempt_service.get_attempt(db_session, exam.id, "candidate-1")
        db_session.refresh(attempt)
        assert attempt.answers_json == {str(questions[1].id): "D"}

    def test_flush_without_session(self, client: TestClient, auth_headers, jft_exam):
        exam, _ = jft_exam
        response = client.post(f"/exams/{exam.id}/session/flush", headers=auth_headers())
        assert response.status_code == 202
        assert response.json()["data"]["queued"] is False

    def test_submit_before_last_section_does_nothing(self, client: TestClient, auth_headers, jft_exam, db_session: Session):
        exam, _ = jft_exam
        _start(client, exam.id, auth_headers())
        response = client.post(f"/exams/{exam.id}/session/submit", headers=auth_headers())
        assert response.json()["data"]["applied"] is False
        assert exam_attempt_service.get_attempt(db_session, exam.id, "candidate-1").submitted_at is None

    def test_candidates_do_not_share_sessions(self, client: TestClient, auth_headers, jft_exam):
        exam, questions = jft_exam
        _start(client, exam.id, auth_headers("candidate-1"))
        _start(client, exam.id, auth_headers("candidate-2"))
        client.post(
            f"/exams/{exam.id}/session/answers",
            headers=auth_headers("candidate-1"),
            json={"question_id": questions[0].id, "option": "B"},
        )
        view = client.get(f"/exams/{exam.id}/session", headers=auth_headers("candidate-2")).json()["data"]
        assert view["answers"] == {}
        assert view["attempt_id"] != client.get(
            f"/exams/{exam.id}/session", headers=auth_headers("candidate-1")
        ).json()["data"]["attempt_id"]
