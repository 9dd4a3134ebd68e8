"""Supplier portal authentication API."""

from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from gateway.exceptions import ValidationFailed, error_for_code, parse_body

from .passwords import analyze_strength, validate_password
from .schemas import LoginDTO, LogoutDTO, PasswordStrengthDTO, RefreshDTO, RegisterDTO
from .services import AccountService, WeakPassword, supplier_payload
from .sessions import SessionManager

AUTH_STATUSES = {
    "INVALID_CREDENTIALS": status.HTTP_401_UNAUTHORIZED,
    "INVALID_REFRESH_TOKEN": status.HTTP_401_UNAUTHORIZED,
    "ACCOUNT_LOCKED": status.HTTP_423_LOCKED,
    "ACCOUNT_DISABLED": status.HTTP_403_FORBIDDEN,
    "WAREHOUSE_ACCESS_DENIED": status.HTTP_403_FORBIDDEN,
    "SUSPICIOUS_ACTIVITY": status.HTTP_403_FORBIDDEN,
    "EMAIL_TAKEN": status.HTTP_409_CONFLICT,
}


def _client_ip(request) -> str:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "")


class AuthView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"


class RegisterView(AuthView):
    authentication_classes = []

    def post(self, request):
        dto = parse_body(RegisterDTO, request.data)
        try:
            supplier = AccountService().register(
                dto.email,
                dto.password,
                dto.company_name,
                contact_name=dto.contact_name,
                tier=dto.tier,
                warehouses=dto.warehouses,
            )
        except WeakPassword as e:
            raise ValidationFailed("WEAK_PASSWORD", errors=[{"loc": "password", "msg": v} for v in e.violations])
        except ValueError as e:
            raise error_for_code(str(e), AUTH_STATUSES)
        return Response(supplier_payload(supplier), status=status.HTTP_201_CREATED)


class LoginView(AuthView):
    authentication_classes = []

    def post(self, request):
        dto = parse_body(LoginDTO, request.data)
        try:
            body = AccountService().login(
                dto.email,
                dto.password,
                warehouse=dto.warehouse,
                ip_address=_client_ip(request),
                user_agent=request.META.get("HTTP_USER_AGENT", ""),
            )
        except ValueError as e:
            raise error_for_code(str(e), AUTH_STATUSES)
        return Response(body)


class RefreshView(AuthView):
    authentication_classes = []

    def post(self, request):
        dto = parse_body(RefreshDTO, request.data)
        try:
            body = AccountService().refresh(dto.refresh_token)
        except ValueError as e:
            raise error_for_code(str(e), AUTH_STATUSES)
        return Response(body)


class LogoutView(AuthView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        dto = parse_body(LogoutDTO, request.data or {})
        AccountService().logout(request.auth["token"], dto.refresh_token, dto.session_token)
        return Response({"ok": True})


class SessionsView(AuthView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        manager = SessionManager()
        sessions = manager.active(request.user.id)
        return Response(
            {
                "results": [
                    {
                        "id": s.id,
                        "warehouse": s.warehouse,
                        "ip_address": s.ip_address,
                        "user_agent": s.user_agent,
                        "created_at": s.created_at.isoformat(),
                        "last_used_at": s.last_used_at.isoformat(),
                        "expires_at": s.expires_at.isoformat(),
                    }
                    for s in sessions
                ],
                "security": manager.detect_suspicious_activity(request.user.id),
            }
        )

    def delete(self, request):
        count = SessionManager().delete_all(request.user.id)
        return Response({"revoked": count})


class PasswordStrengthView(AuthView):
    authentication_classes = []

    def post(self, request):
        dto = parse_body(PasswordStrengthDTO, request.data)
        policy = validate_password(dto.password, personal_info=(dto.email, dto.company_name))
        return Response({**analyze_strength(dto.password).as_dict(), "policy": policy})
