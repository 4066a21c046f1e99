from types import SimpleNamespace

import pytest
import requests

from fintrack.errors import ClassifierError
from fintrack.services.statement_classifier import OllamaStatementClassifier


def _response(status_code=200, body=None):
    return SimpleNamespace(status_code=status_code, json=lambda: body or {})


def _raising(exc):
    def _post(*args, **kwargs):
        raise exc
    return _post


@pytest.fixture
def classifier():
    return OllamaStatementClassifier(base_url="http://ollama.test/", model="mistral", timeout=5)


def test_classify_statement_accepts_wrapped_transactions(classifier, monkeypatch):
    captured = {}

    def fake_post(url, json, timeout):
        captured.update(url=url, payload=json, timeout=timeout)
        return _response(body={"response": '{"transactions": [{"date": "2024-01-05", "amount": 5, "type": "expense"}]}'})

    monkeypatch.setattr("fintrack.services.statement_classifier.requests.post", fake_post)

    rows = classifier.classify_statement("Date,Amount\n2024-01-05,-5", "statement.csv")

    assert rows == [{"date": "2024-01-05", "amount": 5, "type": "expense"}]
    assert captured["url"] == "http://ollama.test/api/generate"
    assert captured["payload"]["format"] == "json"
    assert "statement.csv" in captured["payload"]["prompt"]
    assert captured["timeout"] == 5


def test_classify_statement_accepts_bare_array_in_fences(classifier, monkeypatch):
    output = '```json\n[{"date": "2024-01-05", "amount": 5, "type": "income"}, "noise"]\n```'
    monkeypatch.setattr(
        "fintrack.services.statement_classifier.requests.post",
        lambda *args, **kwargs: _response(body={"response": output}),
    )

    assert classifier.classify_statement("x", "s.csv") == [{"date": "2024-01-05", "amount": 5, "type": "income"}]


@pytest.mark.parametrize(
    "behaviour",
    [
        _raising(requests.exceptions.Timeout()),
        _raising(requests.exceptions.ConnectionError("refused")),
        lambda *a, **k: _response(status_code=500),
        lambda *a, **k: _response(body={"response": "I could not find any transactions"}),
    ],
)
def test_classify_statement_failures_raise_classifier_error(classifier, monkeypatch, behaviour):
    monkeypatch.setattr("fintrack.services.statement_classifier.requests.post", behaviour)

    with pytest.raises(ClassifierError) as excinfo:
        classifier.classify_statement("x", "s.csv")
    assert excinfo.value.no_transactions is False


def test_suggest_category_returns_cleaned_name(classifier, monkeypatch):
    prompts = []

    def fake_post(url, json, timeout):
        prompts.append(json["prompt"])
        return _response(body={"response": ' "Food".\n'})

    monkeypatch.setattr("fintrack.services.statement_classifier.requests.post", fake_post)

    assert classifier.suggest_category("SWIGGY ORDER", 250.0, "expense", ["Food", "Others"]) == "Food"
    assert "Food, Others" in prompts[0]


def test_suggest_category_without_candidates_skips_call(classifier, monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("should not be called")

    monkeypatch.setattr("fintrack.services.statement_classifier.requests.post", fail)

    assert classifier.suggest_category("anything", 1.0, "income", []) is None
