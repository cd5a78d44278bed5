from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.services.exam_attempt import exam_attempt_service


class TestCatalogEndpoints:
    def test_get_exam(self, client: TestClient, auth_headers, jft_exam):
        exam, _ = jft_exam
        response = client.get(f"/exams/{exam.id}", headers=auth_headers())
        assert response.status_code == 200
        data = response.json()["data"]
        assert [s["number"] for s in data["sections_json"]] == [1, 2, 3, 4]
        assert data["language_options"] == ["en", "ja"]

    def test_get_exam_not_found(self, client: TestClient, auth_headers):
        response = client.get("/exams/999", headers=auth_headers())
        assert response.status_code == 404
        body = response.json()
        assert body["error"]["code"] == "NOT_FOUND"
        assert body["path"] == "/exams/999"
        assert body["request_id"] == response.headers["X-Request-ID"]

    def test_candidate_questions_hide_answers(self, client: TestClient, auth_headers, jft_exam):
        exam, questions = jft_exam
        response = client.get(f"/exams/{exam.id}/questions", headers=auth_headers())
        assert response.status_code == 200
        data = response.json()["data"]
        assert [q["id"] for q in data] == [q.id for q in questions]
        for question in data:
            assert "correct_answer" not in question
            assert "explanation" not in question

    def test_requires_token(self, client: TestClient, jft_exam):
        exam, _ = jft_exam
        response = client.get(f"/exams/{exam.id}")
        assert response.status_code in (401, 403)

    def test_rejects_bad_token(self, client: TestClient, jft_exam):
        exam, _ = jft_exam
        response = client.get(f"/exams/{exam.id}", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestResultEndpoint:
    def test_result_before_attempt(self, client: TestClient, auth_headers, jft_exam):
        exam, _ = jft_exam
        response = client.get(f"/exams/{exam.id}/result", headers=auth_headers())
        assert response.status_code == 404

    def test_result_before_submission(self, client: TestClient, auth_headers, jft_exam, db_session: Session, clock):
        exam, _ = jft_exam
        exam_attempt_service.create_attempt(db_session, exam.id, "candidate-1", started_at=clock.now())
        response = client.get(f"/exams/{exam.id}/result", headers=auth_headers("candidate-1"))
        assert response.status_code == 409

    def test_result_after_submission(self, client: TestClient, auth_headers, jft_exam, db_session: Session, clock):
        exam, questions = jft_exam
        attempt = exam_attempt_service.create_attempt(db_session, exam.id, "candidate-1", started_at=clock.now())
        exam_attempt_service.submit_attempt(db_session, attempt.id, submitted_at=clock.now())

        response = client.get(f"/exams/{exam.id}/result", headers=auth_headers("candidate-1"))
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_score_250"] == 0.0
        assert data["passed"] is False
        assert data["questions"][0]["correct_answer"] == questions[0].correct_answer
        assert data["questions"][0]["user_answer"] is None

    def test_result_is_per_candidate(self, client: TestClient, auth_headers, jft_exam, db_session: Session, clock):
        exam, _ = jft_exam
        attempt = exam_attempt_service.create_attempt(db_session, exam.id, "candidate-1", started_at=clock.now())
        exam_attempt_service.submit_attempt(db_session, attempt.id, submitted_at=clock.now())
        response = client.get(f"/exams/{exam.id}/result", headers=auth_headers("candidate-2"))
        assert response.status_code == 404
