"""HTTP-level tests: routing, identity header, error mapping and the full attempt flow."""

from attempt_engine.models import Attempt

from conftest import HEADERS, OUTSIDER_ID, api_begin_and_start, create_exam


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.headers["X-Request-ID"]


def test_missing_student_header_is_unauthorized(client, exam):
    resp = client.post(f"/api/assessments/{exam.assessment_id}/begin")
    assert resp.status_code == 401


def test_domain_errors_are_rendered_as_json(client, exam):
    resp = client.post(f"/api/assessments/{exam.assessment_id}/begin",
                       headers={"X-Student-Id": str(OUTSIDER_ID)})
    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "NOT_ELIGIBLE"
    assert body["error"]
    assert body["details"] == {"assessment_id": exam.assessment_id}


def test_unknown_session_token(client):
    resp = client.post("/api/sessions/not-a-token/start")
    assert resp.status_code == 404
    assert resp.json()["code"] == "SESSION_NOT_FOUND"


def test_device_check_gate_over_http(client, db):
    exam = create_exam(db, proctoring_enabled=True)
    resp = client.post(f"/api/assessments/{exam.assessment_id}/begin",
                       headers={**HEADERS, "User-Agent": "exam-browser/2.1"})
    token = resp.json()["session_token"]

    resp = client.post(f"/api/sessions/{token}/start")
    assert resp.status_code == 409
    assert resp.json()["code"] == "DEVICE_CHECK_INCOMPLETE"

    resp = client.post(f"/api/sessions/{token}/device-checks",
                       json={"device": "mic", "status": "failed"})
    assert resp.status_code == 200
    assert resp.json()["retryable"] is True

    for device in ("mic", "camera"):
        client.post(f"/api/sessions/{token}/device-checks",
                    json={"device": device, "status": "success"})
    checks = client.get(f"/api/sessions/{token}/device-checks").json()["device_checks"]
    assert checks["mic"]["status"] == checks["camera"]["status"] == "success"

    resp = client.post(f"/api/sessions/{token}/start")
    assert resp.status_code == 200
    assert resp.json()["status"] == "in_progress"


def test_full_attempt_flow(client, db, fake_executor):
    exam = create_exam(db, negative_points=0)
    api_begin_and_start(client, exam.assessment_id)
    base = f"/api/assessments/{exam.assessment_id}"

    config = client.get(f"{base}/runtime", headers=HEADERS).json()
    assert config["total_questions"] == 3

    first = client.get(f"{base}/questions/0", headers=HEADERS).json()
    assert first["assessment_question_id"] == exam.aq_single
    assert all("is_correct" not in option for option in first["options"])

    resp = client.put(f"{base}/answers/{exam.aq_single}", headers=HEADERS,
                      json={"selected_option_ids": [exam.single_correct], "time_taken_seconds": 20})
    assert resp.status_code == 200
    assert resp.json()["points_earned"] == 4.0

    resp = client.put(f"{base}/answers/{exam.aq_multi}", headers=HEADERS,
                      json={"selected_option_ids": [exam.multi_wrong]})
    assert resp.json()["is_correct"] is False

    resp = client.put(f"{base}/flags/{exam.aq_multi}", headers=HEADERS, json={"is_flagged": True})
    assert resp.json()["is_flagged"] is True

    code = {"language": "python", "source_code": "def solve(nums):\n    return sum(nums)\n"}
    resp = client.post(f"{base}/questions/{exam.aq_coding}/run", headers=HEADERS, json=code)
    assert resp.status_code == 200
    assert resp.json()["status"] == "accepted"

    fake_executor.passed = 1
    resp = client.post(f"{base}/questions/{exam.aq_coding}/submit", headers=HEADERS, json=code)
    assert resp.json()["points_earned"] == 5.0

    preview = client.get(f"{base}/submit-preview", headers=HEADERS).json()
    assert preview["attended"] == 3
    assert preview["flagged"] == 1

    result = client.post(f"{base}/submit", headers=HEADERS).json()
    assert result["status"] == "evaluated"
    assert result["score_obtained"] == 9.0
    assert result["total_score"] == 18.0
    assert result["percentage"] == 50.0

    again = client.post(f"{base}/submit", headers=HEADERS).json()
    assert again["already_finalized"] is True
    assert again["score_obtained"] == result["score_obtained"]

    resp = client.put(f"{base}/answers/{exam.aq_single}", headers=HEADERS,
                      json={"selected_option_ids": [exam.single_wrong]})
    assert resp.status_code == 409
    assert resp.json()["code"] == "ATTEMPT_NOT_ACTIVE"

    attempt = db.query(Attempt).filter(Attempt.assessment_id == exam.assessment_id).one()
    assert attempt.status == "evaluated"


def test_judge_outage_maps_to_503(client, exam, fake_executor):
    api_begin_and_start(client, exam.assessment_id)
    fake_executor.unavailable = True
    resp = client.post(f"/api/assessments/{exam.assessment_id}/questions/{exam.aq_coding}/submit",
                       headers=HEADERS, json={"language": "python", "source_code": "x = 1"})
    assert resp.status_code == 503
    assert resp.json()["code"] == "JUDGE_UNAVAILABLE"


def test_unsupported_language_maps_to_422(client, exam):
    api_begin_and_start(client, exam.assessment_id)
    resp = client.post(f"/api/assessments/{exam.assessment_id}/questions/{exam.aq_coding}/run",
                       headers=HEADERS, json={"language": "ruby", "source_code": "puts 1"})
    assert resp.status_code == 422
    assert resp.json()["code"] == "UNSUPPORTED_LANGUAGE"


def test_proctoring_event_endpoint(client, exam):
    api_begin_and_start(client, exam.assessment_id)
    resp = client.post(f"/api/assessments/{exam.assessment_id}/proctoring-events",
                       headers=HEADERS, json={"event_type": "face_not_detected"})
    assert resp.status_code == 201
    assert resp.json()["event_type"] == "face_not_detected"
