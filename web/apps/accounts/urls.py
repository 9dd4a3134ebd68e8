from django.urls import path

from .views import LoginView, LogoutView, PasswordStrengthView, RefreshView, RegisterView, SessionsView

app_name = "accounts"

urlpatterns = [
    path("register/", RegisterView.as_view(), name="register"),
    path("login/", LoginView.as_view(), name="login"),
    path("refresh/", RefreshView.as_view(), name="refresh"),
    path("logout/", LogoutView.as_view(), name="logout"),
    path("sessions/", SessionsView.as_view(), name="sessions"),
    path("password/strength/", PasswordStrengthView.as_view(), name="password-strength"),
]
