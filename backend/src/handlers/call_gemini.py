import base64
import json
import os
import boto3
import requests
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent"

CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*"
}

# --- Padrão Singleton para Clientes (Cold Start Mitigation) ---
_HTTP_SESSION = None
_SECRETS_CLIENT = None


class InvalidPrompt(ValueError):
    """Body ausente, JSON inválido ou sem 'prompt'."""


def get_http_session():
    global _HTTP_SESSION
    if _HTTP_SESSION is None:
        _HTTP_SESSION = requests.Session()
    return _HTTP_SESSION


def get_secrets_client():
    global _SECRETS_CLIENT
    if _SECRETS_CLIENT is None:
        config = Config(retries={'max_attempts': 3, 'mode': 'standard'})
        _SECRETS_CLIENT = boto3.client("secretsmanager", config=config)
    return _SECRETS_CLIENT


def _response(status_code, body, raw=False):
    return {
        "statusCode": status_code,
        "headers": dict(CORS_HEADERS),
        "body": body if raw else json.dumps(body)
    }


def get_api_key(secrets_client=None):
    """
    Lê a chave do Gemini a cada invocação.
    Ordem: variável GEMINI_API_KEY; se vazia, o segredo apontado por
    GEMINI_API_KEY_SECRET_ID no Secrets Manager (string pura ou JSON
    com o campo GEMINI_API_KEY). Retorna None se não houver chave.
    """
    api_key = os.environ.get("GEMINI_API_KEY")
    if api_key:
        return api_key

    secret_id = os.environ.get("GEMINI_API_KEY_SECRET_ID")
    if not secret_id:
        return None

    try:
        # NoRegionError pode surgir já na criação do cliente
        client = secrets_client if secrets_client else get_secrets_client()
        secret = client.get_secret_value(SecretId=secret_id)
    except (ClientError, BotoCoreError) as e:
        print(f"ERRO ao ler segredo '{secret_id}': {type(e).__name__}")
        return None

    value = secret.get("SecretString") or ""
    if value.startswith("{"):
        try:
            value = json.loads(value).get("GEMINI_API_KEY") or ""
        except (ValueError, AttributeError):
            value = ""
    return value or None


def parse_prompt(event):
    """Extrai o prompt do body do evento (API Gateway / Netlify)."""
    raw_body = event.get("body")
    if not raw_body:
        raise InvalidPrompt("Body vazio")

    # lambda.invoke direto pode mandar o body já como dict/número
    if not isinstance(raw_body, str):
        raise InvalidPrompt("Body não é uma string JSON")

    if event.get("isBase64Encoded"):
        try:
            raw_body = base64.b64decode(raw_body).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            raise InvalidPrompt("Body base64 inválido") from e

    try:
        body = json.loads(raw_body)
    except ValueError as e:
        raise InvalidPrompt("JSON inválido") from e

    if not isinstance(body, dict):
        raise InvalidPrompt("Body não é um objeto JSON")

    prompt = body.get("prompt")
    if not isinstance(prompt, str) or not prompt:
        raise InvalidPrompt("Campo 'prompt' ausente ou vazio")

    return prompt


def build_payload(prompt):
    return {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}]
    }


def _http_method(event):
    method = event.get("httpMethod")
    if not method:
        # HTTP API (payload v2); eventos de teste do console trazem requestContext null
        http = (event.get("requestContext") or {}).get("http") or {}
        method = http.get("method")
    # Comparação estrita: 'post' minúsculo não é aceito
    return str(method or "")


def lambda_handler(event, context, http_session=None, secrets_client=None):
    """
    Proxy do prompt do navegador para o Gemini, escondendo a API Key.
    Rota: POST /call-gemini
    Args:
        http_session: requests.Session opcional para testes.
        secrets_client: cliente boto3 do Secrets Manager opcional para testes.
    """
    try:
        # 1. Apenas POST
        if _http_method(event) != "POST":
            return _response(405, {"error": "Method Not Allowed"})

        # 2. Configuração (antes do parsing do body)
        api_key = get_api_key(secrets_client)
        if not api_key:
            print("ERRO DE CONFIGURAÇÃO: GEMINI_API_KEY não encontrada.")
            return _response(500, {"error": "Server configuration error: API key not found."})

        # 3. Parsing do Input
        try:
            prompt = parse_prompt(event)
        except InvalidPrompt as e:
            print(f"Requisição inválida: {e}")
            return _response(400, {"error": "Bad Request: Invalid JSON or missing prompt."})

        # 4. Chamada ao Gemini (a chave vai na query string; nunca logar a URL)
        session = http_session if http_session else get_http_session()
        response = session.post(
            GEMINI_API_URL,
            params={"key": api_key},
            headers={"Content-Type": "application/json"},
            data=json.dumps(build_payload(prompt))
        )

        # 5. Mapeamento da resposta (JSON lido mesmo em erro)
        data = response.json()

        if not 200 <= response.status_code < 300:
            print(f"Gemini API Error ({response.status_code}): {json.dumps(data)}")
            return _response(response.status_code, {
                "error": "An error occurred while calling the Gemini API.",
                "details": data
            })

        # Sucesso: repassa os bytes exatos do Gemini (o json() acima só valida)
        return _response(200, response.text, raw=True)

    except Exception as e:
        # Exceções do requests carregam a URL com a chave: logamos só o tipo
        print(f"ERRO CRÍTICO: {type(e).__name__}")
        return _response(500, {"error": "An unexpected internal server error occurred."})
