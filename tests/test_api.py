from legal_review.main import app, engine_from_settings, get_engine_factory
from legal_review.services.engine import EngineUnavailableError

from conftest import DIFFERENCES, analysis_replies


def _upload_and_extract(client, sample_pdf):
    response = client.post("/documents", json={"file_path": str(sample_pdf), "contract_type": "nda"})
    assert response.status_code == 201
    document_id = response.json()["id"]
    assert client.post(f"/documents/{document_id}/extract").status_code == 200
    return document_id


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_upload_document(client, sample_pdf, storage_dir):
    response = client.post("/documents", json={"file_path": str(sample_pdf), "contract_type": "nda"})
    assert response.status_code == 201
    data = response.json()
    assert data["processing_status"] == "pending"
    assert data["raw_text"] is None
    assert data["stored_path"].startswith(str(storage_dir))


def test_upload_validation(client, tmp_path, sample_pdf):
    missing = client.post("/documents", json={"file_path": str(tmp_path / "x.pdf"), "contract_type": "nda"})
    assert missing.status_code == 400
    assert missing.json()["detail"].startswith("File not found")

    bad_type = client.post("/documents", json={"file_path": str(sample_pdf), "contract_type": "employment"})
    assert bad_type.status_code == 422


def test_unknown_document_is_404(client):
    for method, path in [
        ("get", "/documents/missing"),
        ("delete", "/documents/missing"),
        ("post", "/documents/missing/extract"),
        ("post", "/documents/missing/analyze"),
        ("get", "/documents/missing/extractions"),
        ("get", "/documents/missing/reports"),
    ]:
        response = getattr(client, method)(path)
        assert response.status_code == 404, path
        assert response.json()["detail"] == "Document missing not found"


def test_extract_failure_is_502(client, blank_pdf):
    document_id = client.post(
        "/documents", json={"file_path": str(blank_pdf), "contract_type": "lease"}
    ).json()["id"]

    response = client.post(f"/documents/{document_id}/extract")
    assert response.status_code == 502

    document = client.get(f"/documents/{document_id}").json()
    assert document["processing_status"] == "error"
    assert "OCR" in document["error_message"]


def test_analyze_flow(client, api_engine, sample_pdf):
    document_id = _upload_and_extract(client, sample_pdf)
    api_engine.queue(*analysis_replies())

    response = client.post(f"/documents/{document_id}/analyze")
    assert response.status_code == 200
    result = response.json()
    assert result["overall_score"] == 42
    assert result["risk_level"] == "medium"

    document = client.get(f"/documents/{document_id}").json()
    assert document["processing_status"] == "analyzed"
    assert document["risk_assessment_id"] == result["risk_assessment_id"]

    extractions = client.get(f"/documents/{document_id}/extractions").json()
    assert extractions[0]["extracted_data"]["parties"] == ["Acme Corp", "Beta LLC"]
    risks = client.get(f"/documents/{document_id}/risk-assessments").json()
    assert risks[0]["flags"][0]["category"] == "liability"

    assert client.get("/documents/stats").json() == {"total": 1, "analyzed": 1, "pending": 0, "failed": 0}
    assert client.get("/risk-distribution").json() == {"low": 0, "medium": 1, "high": 0}


def test_analyze_without_text_is_409(client, sample_pdf):
    document_id = client.post(
        "/documents", json={"file_path": str(sample_pdf), "contract_type": "nda"}
    ).json()["id"]

    response = client.post(f"/documents/{document_id}/analyze")
    assert response.status_code == 409
    assert response.json()["detail"] == "Document text not yet extracted"


def test_analyze_engine_failure_is_502(client, api_engine, sample_pdf):
    document_id = _upload_and_extract(client, sample_pdf)
    api_engine.queue(EngineUnavailableError("Ollama request timed out"))

    response = client.post(f"/documents/{document_id}/analyze")
    assert response.status_code == 502

    document = client.get(f"/documents/{document_id}").json()
    assert document["processing_status"] == "error"
    assert document["raw_text"]


def test_analyze_without_configured_key_is_400(client, sample_pdf):
    document_id = _upload_and_extract(client, sample_pdf)
    app.dependency_overrides[get_engine_factory] = lambda: engine_from_settings
    client.put("/settings/ai_provider", json={"value": "openai"})

    response = client.post(f"/documents/{document_id}/analyze")
    assert response.status_code == 400
    assert response.json()["detail"] == "OpenAI API key not configured"
    assert client.get(f"/documents/{document_id}").json()["processing_status"] == "extracted"


def test_comparisons(client, api_engine, sample_pdf):
    first = _upload_and_extract(client, sample_pdf)
    second = _upload_and_extract(client, sample_pdf)

    same = client.post("/comparisons", json={"document_a_id": first, "document_b_id": first})
    assert same.status_code == 400

    api_engine.queue(DIFFERENCES)
    response = client.post("/comparisons", json={"document_a_id": first, "document_b_id": second})
    assert response.status_code == 201
    assert response.json()["comparison_type"] == "document_vs_document"
    assert len(response.json()["differences"]) == 2

    api_engine.queue({"summary": "no differences key"})
    malformed = client.post("/comparisons", json={"document_a_id": first, "document_b_id": second})
    assert malformed.status_code == 502

    listed = client.get(f"/documents/{second}/comparisons").json()
    assert [c["id"] for c in listed] == [response.json()["id"]]


def test_templates(client, api_engine, sample_pdf):
    created = client.post("/templates", json={
        "name": "Standard NDA", "contract_type": "nda", "raw_text": "Baseline NDA text."
    })
    assert created.status_code == 201
    template_id = created.json()["id"]
    assert [t["name"] for t in client.get("/templates").json()] == ["Standard NDA"]

    document_id = _upload_and_extract(client, sample_pdf)
    api_engine.queue(DIFFERENCES)
    response = client.post("/comparisons/template", json={"document_id": document_id, "template_id": template_id})
    assert response.status_code == 201
    assert response.json()["template_id"] == template_id

    assert client.delete(f"/templates/{template_id}").status_code == 204
    assert client.delete(f"/templates/{template_id}").status_code == 404
    assert client.post("/templates", json={"name": "x", "contract_type": "nda", "raw_text": " "}).status_code == 422


def test_reports(client, api_engine, sample_pdf, reports_dir):
    document_id = _upload_and_extract(client, sample_pdf)

    premature = client.post(f"/documents/{document_id}/reports")
    assert premature.status_code == 409
    assert premature.json()["detail"] == "No risk assessment found. Run analysis first."

    api_engine.queue(*analysis_replies(), "Executive summary for the client.")
    client.post(f"/documents/{document_id}/analyze")
    response = client.post(f"/documents/{document_id}/reports")
    assert response.status_code == 201
    report = response.json()
    assert "Executive summary for the client." in report["content"]
    assert report["export_path"].startswith(str(reports_dir))

    assert [r["id"] for r in client.get(f"/documents/{document_id}/reports").json()] == [report["id"]]


def test_delete_document(client, sample_pdf):
    document_id = _upload_and_extract(client, sample_pdf)
    assert client.delete(f"/documents/{document_id}").status_code == 204
    assert client.get(f"/documents/{document_id}").status_code == 404
    assert client.get("/documents").json() == []


def test_settings(client):
    assert client.get("/settings").json()["ai_provider"] == "ollama"

    response = client.put("/settings/openai_api_key", json={"value": "sk-secret"})
    assert response.status_code == 200
    assert response.json() == {"key": "openai_api_key", "value": "****"}
    assert client.get("/settings/openai_api_key").json()["value"] == "****"
    assert client.get("/settings").json()["openai_api_key"] == "****"

    client.put("/settings/openai_model", json={"value": "gpt-4o-mini"})
    assert client.get("/settings/openai_model").json()["value"] == "gpt-4o-mini"
    assert client.get("/settings/claude_model").json()["value"] is None

    assert client.put("/settings/ai_provider", json={"value": "gemini"}).status_code == 400
    assert client.get("/settings/theme").status_code == 400


def test_engine_closed_after_request(client, api_engine, sample_pdf):
    document_id = _upload_and_extract(client, sample_pdf)
    api_engine.queue(*analysis_replies())
    client.post(f"/documents/{document_id}/analyze")
    assert api_engine.closed == 1

    api_engine.queue(RuntimeError("rate limited"))
    assert client.post(f"/documents/{document_id}/reports").status_code == 502
    assert api_engine.closed == 2


def test_report_export_failure_is_500(client, api_engine, sample_pdf, reports_dir):
    document_id = _upload_and_extract(client, sample_pdf)
    api_engine.queue(*analysis_replies(), "Summary.")
    client.post(f"/documents/{document_id}/analyze")
    reports_dir.write_text("occupied")

    assert client.post(f"/documents/{document_id}/reports").status_code == 500
    assert client.get(f"/documents/{document_id}/reports").json() == []
