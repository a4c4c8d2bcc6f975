"""Tests for POST /chat/ask."""

from datetime import date, timedelta

import pytest

from esghub.chat import routes as chat_routes
from esghub.models import License


@pytest.fixture
def llm(monkeypatch):
    """Capture the prompt instead of calling the API."""
    calls = []

    def fake_generate(system, messages):
        calls.append({"system": system, "messages": messages})
        return "Resposta simulada."

    monkeypatch.setattr(chat_routes, "_generate_answer", fake_generate)
    return calls


def test_requires_login(anon_client):
    resp = anon_client.post("/chat/ask", json={"message": "Oi"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Não autorizado"


def test_empty_message_is_rejected(client, llm):
    resp = client.post("/chat/ask", json={"message": "   "})
    assert resp.status_code == 400
    assert llm == []


def test_user_id_mismatch_is_unauthorized(client, llm):
    resp = client.post("/chat/ask", json={"message": "Oi", "userId": 999})
    assert resp.status_code == 401


def test_answer_with_license_context(client, llm, add, company_id):
    add(License(company_id=company_id, license_name="LO Fábrica",
                expiration_date=date.today() + timedelta(days=10)))

    resp = client.post("/chat/ask", json={
        "message": "Quais licenças estão vencendo?",
        "currentPage": "dashboard",
        "history": [{"role": "user", "content": f"msg {i}"} for i in range(15)],
    })
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["response"] == "Resposta simulada."
    assert body["context"].startswith("Licenças:")
    assert body["dataFound"] is True
    assert body["companyName"] == "Empresa Demo"
    assert body["marketInfo"] is None
    assert body["suggestedActions"]

    call = llm[0]
    # last 10 history messages plus the question
    assert len(call["messages"]) == 11
    assert call["messages"][0]["content"] == "msg 5"
    assert call["messages"][-1]["content"] == "Quais licenças estão vencendo?"
    assert "Empresa: Empresa Demo" in call["system"]
    assert "LO Fábrica" in call["system"]


def test_general_question(client, llm):
    resp = client.post("/chat/ask", json={"message": "Olá, tudo bem?"})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["dataFound"] is False
    assert body["context"].startswith("Pergunta geral")


def test_llm_failure_returns_apology(client, monkeypatch):
    def failing(system, messages):
        raise RuntimeError("upstream timeout")

    monkeypatch.setattr(chat_routes, "_generate_answer", failing)
    resp = client.post("/chat/ask", json={"message": "Quais as metas?"})
    assert resp.status_code == 500
    assert resp.get_json()["response"] == chat_routes.APOLOGY_MESSAGE


def test_missing_api_key_returns_apology(client):
    resp = client.post("/chat/ask", json={"message": "Quais as metas?"})
    assert resp.status_code == 500
    assert "ANTHROPIC_API_KEY" in resp.get_json()["error"]


@pytest.mark.parametrize("payload", [
    {"message": 5},
    {"message": ["Oi"]},
    {"message": "Oi", "history": "não é lista"},
    {"message": "Oi", "history": ["texto solto"]},
])
def test_malformed_payload_is_bad_request(client, llm, payload):
    resp = client.post("/chat/ask", json=payload)
    assert resp.status_code == 400
    assert llm == []


def test_non_string_page_is_ignored(client, llm):
    resp = client.post("/chat/ask", json={"message": "Olá, tudo bem?", "currentPage": 3})
    assert resp.status_code == 200
    assert resp.get_json()["context"].startswith("Pergunta geral")
