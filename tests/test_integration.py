import base64
import json

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from repo_insight import api, core
from repo_insight.remote import RemoteClient

GITHUB_API = "https://api.github.com/repos/octo/demo"
CHAT_URL = "https://api.openai.com/v1/chat/completions"

LLM_RESPONSE = json.dumps(
    {
        "summary": {
            "overview": "A tiny web service with a Node toolchain.",
            "projectType": {"category": "API Microservice", "subcategory": "FastAPI Service", "confidence": 0.8},
            "tags": ["fastapi", "python", "node"],
        },
        "keyFiles": [
            {"path": "main.py", "role": "Entrypoint", "purpose": "Creates the app", "importance": "Main flow"},
            {"path": "server/ghost.py", "role": "Core", "purpose": "Does not exist", "importance": "None"},
        ],
        "keyFolders": [],
        "pipeline": "HTTP requests are handled by FastAPI routes.",
        "useCases": ["Serving a REST API"],
        "requirements": {"dependencies": ["fastapi"], "environment": "Python 3.11"},
        "health": {"status": "moderate", "score": 65, "indicators": ["Recent commits"], "concerns": [], "maintenance": "OK"},
    }
)


@pytest.fixture
def client():
    return TestClient(api.app, raise_server_exceptions=False)


@pytest.fixture
def no_backoff(monkeypatch, no_sleep):
    monkeypatch.setattr(core, "RemoteClient", lambda: RemoteClient(sleep=no_sleep))


def _encoded(text: str) -> dict:
    return {"content": base64.b64encode(text.encode()).decode(), "encoding": "base64"}


def chat_response(content: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "id": "chatcmpl-test",
            "object": "chat.completion",
            "created": 0,
            "model": "gpt-4o-mini",
            "choices": [
                {"index": 0, "finish_reason": "stop", "message": {"role": "assistant", "content": content}}
            ],
        },
    )


def _mock_github_api(repo_status: int = 200):
    """Mock a flat repository: README.md, main.py and package.json at the root."""
    respx.get(GITHUB_API).mock(
        return_value=httpx.Response(
            repo_status,
            json={
                "full_name": "octo/demo",
                "html_url": "https://github.com/octo/demo",
                "stargazers_count": 12,
                "forks_count": 1,
                "pushed_at": "2024-01-01T00:00:00Z",
                "license": {"name": "MIT License"},
            },
        )
    )
    respx.get(f"{GITHUB_API}/languages").mock(return_value=httpx.Response(200, json={"Python": 900, "JavaScript": 100}))
    respx.get(f"{GITHUB_API}/readme").mock(return_value=httpx.Response(200, json=_encoded("# Demo\nA demo.")))
    respx.get(f"{GITHUB_API}/commits").mock(return_value=httpx.Response(200, json=[]))
    respx.get(f"{GITHUB_API}/issues").mock(return_value=httpx.Response(200, json=[]))
    respx.get(f"{GITHUB_API}/contributors").mock(return_value=httpx.Response(200, json=[]))
    respx.get(f"{GITHUB_API}/contents/").mock(
        return_value=httpx.Response(
            200,
            json=[
                {"name": "README.md", "path": "README.md", "type": "file"},
                {"name": "main.py", "path": "main.py", "type": "file"},
                {"name": "package.json", "path": "package.json", "type": "file"},
            ],
        )
    )
    respx.get(f"{GITHUB_API}/contents/main.py").mock(
        return_value=httpx.Response(200, json=_encoded("from fastapi import FastAPI\napp = FastAPI()\n"))
    )
    respx.get(f"{GITHUB_API}/contents/package.json").mock(
        return_value=httpx.Response(200, json=_encoded('{"name": "demo"}'))
    )
    respx.route(host="api.github.com").mock(return_value=httpx.Response(404))


def test_usage(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "/analyze" in resp.json()["usage"]


@respx.mock
def test_successful_analysis(client, monkeypatch, no_backoff):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    _mock_github_api()
    llm_route = respx.post(CHAT_URL).mock(return_value=chat_response(LLM_RESPONSE))

    resp = client.post("/analyze", json={"github_url": "https://github.com/octo/demo"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["summary"]["projectType"]["category"] == "API Microservice"
    assert [f["path"] for f in data["keyFiles"]] == ["main.py"]
    assert data["keyFolders"] == []
    assert data["metadata"]["stars"] == 12
    assert data["metadata"]["license"] == "MIT License"
    assert data["metadata"]["baselineHealth"]["concerns"]
    assert data["fromCache"] is False

    prompt = json.loads(llm_route.calls.last.request.content)["messages"][1]["content"]
    assert "[file] main.py" in prompt
    assert "from fastapi import FastAPI" in prompt


@respx.mock
def test_second_request_served_from_cache(client, monkeypatch, no_backoff):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    _mock_github_api()
    llm_route = respx.post(CHAT_URL).mock(return_value=chat_response(LLM_RESPONSE))

    first = client.post("/analyze", json={"github_url": "https://github.com/octo/demo"})
    second = client.post("/analyze", json={"github_url": "https://github.com/octo/demo"})

    assert first.status_code == second.status_code == 200
    assert second.json()["fromCache"] is True
    assert second.json()["keyFiles"] == first.json()["keyFiles"]
    assert llm_route.call_count == 1


@respx.mock
def test_force_refresh(client, monkeypatch, no_backoff):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    _mock_github_api()
    llm_route = respx.post(CHAT_URL).mock(return_value=chat_response(LLM_RESPONSE))

    client.post("/analyze", json={"github_url": "https://github.com/octo/demo"})
    resp = client.post("/analyze", json={"github_url": "https://github.com/octo/demo", "force_refresh": True})

    assert resp.json()["fromCache"] is False
    assert llm_route.call_count == 2


def test_missing_api_key(client):
    resp = client.post("/analyze", json={"github_url": "https://github.com/octo/demo"})
    assert resp.status_code == 503
    assert "OPENAI_API_KEY" in resp.json()["message"]


def test_invalid_url(client):
    resp = client.post("/analyze", json={"github_url": "https://gitlab.com/user/repo"})
    assert resp.status_code == 400
    data = resp.json()
    assert data["status"] == "error"
    assert "message" in data


def test_missing_body_field(client):
    resp = client.post("/analyze", json={})
    assert resp.status_code == 422
    assert "github_url" in resp.json()["message"]


@respx.mock
def test_repo_not_found(client, monkeypatch, no_backoff):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    _mock_github_api(repo_status=404)

    resp = client.post("/analyze", json={"github_url": "https://github.com/octo/demo"})

    assert resp.status_code == 404
    assert "may not exist" in resp.json()["message"]


@respx.mock
def test_llm_failure(client, monkeypatch, no_backoff):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    _mock_github_api()
    llm_route = respx.post(CHAT_URL).mock(return_value=httpx.Response(500, json={"error": {"message": "oops"}}))

    resp = client.post("/analyze", json={"github_url": "https://github.com/octo/demo"})

    assert resp.status_code == 502
    assert resp.json()["message"].startswith("Failed to analyze repository")
    assert llm_route.call_count == 3


@respx.mock
def test_llm_invalid_json(client, monkeypatch, no_backoff):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    _mock_github_api()
    respx.post(CHAT_URL).mock(return_value=chat_response("Sorry, I cannot help with that."))

    resp = client.post("/analyze", json={"github_url": "https://github.com/octo/demo"})

    assert resp.status_code == 502
    assert "AI returned invalid data" in resp.json()["message"]
