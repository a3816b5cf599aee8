import hmac

from django.conf import settings
from rest_framework import permissions

TOKEN_SCHEMES = ("bearer", "token", "app")


def _same_token(received: str, expected: str) -> bool:
    return bool(received) and hmac.compare_digest(received.encode(), expected.encode())


def request_has_app_token(request, expected_token: str) -> bool:
    if _same_token((request.headers.get("X-App-Token") or "").strip(), expected_token):
        return True
    auth_header = (request.headers.get("Authorization") or "").strip()
    scheme, _, raw_value = auth_header.partition(" ")
    if raw_value:
        return scheme.lower() in TOKEN_SCHEMES and _same_token(raw_value.strip(), expected_token)
    return _same_token(auth_header, expected_token)


class HasAppTokenOrAuthenticated(permissions.BasePermission):
    """
    Libera usuários autenticados (sessão ou token DRF) e integrações que
    enviam APP_INTEGRATION_TOKEN. Sem token configurado, o acesso é livre.
    """

    message = "Autenticação necessária para acessar a precificação."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if user and user.is_authenticated:
            return True
        expected_token = getattr(settings, "APP_INTEGRATION_TOKEN", None)
        if not expected_token:
            return True
        return request_has_app_token(request, expected_token)
