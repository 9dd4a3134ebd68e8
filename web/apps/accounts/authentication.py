"""DRF authentication with bearer access tokens."""

from rest_framework.authentication import BaseAuthentication

from gateway.exceptions import AuthenticationFailed

from .models import Supplier
from .tokens import extract_token_from_header, verify_access_token


class JWTAuthentication(BaseAuthentication):
    """Authenticate ``Authorization: Bearer <access token>``.

    No header means anonymous; a header with a bad token is a 401.
    ``request.auth`` holds the verified claims.
    """

    def authenticate(self, request):
        header = request.headers.get("Authorization")
        if not header:
            return None
        token = extract_token_from_header(header)
        if not token:
            raise AuthenticationFailed("INVALID_TOKEN")
        claims = verify_access_token(token)
        if claims is None:
            raise AuthenticationFailed("INVALID_TOKEN")
        supplier = Supplier.objects.filter(id=claims["sub"], is_active=True).first()
        if supplier is None:
            raise AuthenticationFailed("INVALID_TOKEN")
        return supplier, {**claims, "token": token}

    def authenticate_header(self, request):
        return 'Bearer realm="api"'
