import pytest
import requests

from replydraft import llm
from replydraft.compiler import ConstraintCompiler
from replydraft.errors import UpstreamError
from replydraft.models import OrgReplySettings, ReviewInput, VoiceProfile


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _request(text="We waited 40 minutes for a table.", rating=1):
    review = ReviewInput(text=text, rating=rating, business_name="Cafe Lua")
    return ConstraintCompiler().compile(review, VoiceProfile(), OrgReplySettings())


@pytest.fixture
def live(monkeypatch):
    monkeypatch.setattr(llm, "DRY_RUN", False)
    calls = []

    def install(response):
        def fake_post(url, headers=None, json=None, timeout=None):
            calls.append({"url": url, "json": json})
            if isinstance(response, Exception):
                raise response
            return response
        monkeypatch.setattr(llm.requests, "post", fake_post)
        return calls

    return install


def test_dry_run_mentions_review_topic(monkeypatch):
    monkeypatch.setattr(llm, "DRY_RUN", True)
    assert llm.generate_reply(_request()).startswith("Sorry about the wait")
    assert "the atmosphere" in llm.generate_reply(_request("Loved the music tonight.", rating=5))


def test_success_returns_content(live):
    calls = live(FakeResponse(payload={"choices": [{"message": {"content": "The ramen landed."}}]}))
    assert llm.generate_reply(_request(), model="test-model") == "The ramen landed."
    sent = calls[0]["json"]
    assert calls[0]["url"].endswith("/chat/completions")
    assert sent["model"] == "test-model"
    assert sent["temperature"] == 0.15
    assert len(sent["messages"]) == 2


def test_correction_message_appended(live):
    calls = live(FakeResponse(payload={"choices": [{"message": {"content": "ok"}}]}))
    llm.generate_reply(_request(), correction=["We strive"])
    last = calls[0]["json"]["messages"][-1]
    assert last["role"] == "user"
    assert '"We strive"' in last["content"]


def test_non_success_status_raises(live):
    live(FakeResponse(status_code=429, payload={"error": "rate limited"}))
    with pytest.raises(UpstreamError) as exc:
        llm.generate_reply(_request())
    assert exc.value.upstream_status == 429
    assert exc.value.upstream_body == {"error": "rate limited"}
    assert exc.value.status_code == 502


def test_non_json_error_body_kept_as_text(live):
    live(FakeResponse(status_code=500, text="boom"))
    with pytest.raises(UpstreamError) as exc:
        llm.generate_reply(_request())
    assert exc.value.upstream_body == "boom"


def test_network_failure_raises(live):
    live(requests.ConnectionError("refused"))
    with pytest.raises(UpstreamError):
        llm.generate_reply(_request())


def test_malformed_payload_raises(live):
    live(FakeResponse(payload={"choices": []}))
    with pytest.raises(UpstreamError):
        llm.generate_reply(_request())
