import json
import pytest
import boto3
from moto import mock_aws

@pytest.fixture(autouse=True)
def clean_gemini_env(monkeypatch):
    """Cada teste começa sem chave configurada."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY_SECRET_ID", raising=False)

@pytest.fixture(scope="function")
def aws_credentials(monkeypatch):
    """Mocked AWS Credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")

@pytest.fixture(scope="function")
def secrets_client(aws_credentials):
    with mock_aws():
        conn = boto3.client("secretsmanager", region_name="us-east-1")
        yield conn

@pytest.fixture
def api_gateway_event():
    """Monta um evento de proxy do API Gateway (POST por padrão)."""
    def _build(body=None, method="POST", raw_body=None):
        event = {"httpMethod": method, "body": raw_body}
        if body is not None:
            event["body"] = json.dumps(body)
        return event
    return _build
