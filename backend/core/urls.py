from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView
from .views import LedgerTokenObtainPairView, user_me, audit_log_list, audit_log_detail

urlpatterns = [
    # Auth endpoints
    path('auth/login/', LedgerTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('auth/me/', user_me, name='user-me'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),
    path('audit-logs/<int:pk>/', audit_log_detail, name='audit-log-detail'),
]
