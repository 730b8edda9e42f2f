from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework_simplejwt.views import TokenObtainPairView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from django.core.paginator import Paginator
from django.shortcuts import get_object_or_404
from .models import AuditLog
from .serializers import UserSerializer, AuditLogSerializer


class LedgerTokenObtainPairSerializer(TokenObtainPairSerializer):
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['groups'] = list(user.groups.values_list('name', flat=True))
        return token


class LedgerTokenObtainPairView(TokenObtainPairView):
    serializer_class = LedgerTokenObtainPairSerializer


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Return the authenticated user"""
    return Response(UserSerializer(request.user).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    # Non-staff users only see their own entries
    if not request.user.is_staff:
        queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    sku_filter = request.query_params.get('sku', None)
    if sku_filter:
        queryset = queryset.filter(sku=sku_filter)

    reference = request.query_params.get('reference', None)
    if reference:
        queryset = queryset.filter(object_reference=reference)

    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = queryset.order_by('-created_at', '-id')

    try:
        page = int(request.query_params.get('page', 1))
        limit = int(request.query_params.get('limit', 50))
    except ValueError:
        return Response({'success': False, 'error': 'page and limit must be integers'}, status=status.HTTP_400_BAD_REQUEST)

    paginator = Paginator(queryset, max(1, min(limit, 500)))
    page_obj = paginator.get_page(page)
    serializer = AuditLogSerializer(page_obj, many=True)
    return Response({
        'results': serializer.data,
        'count': paginator.count,
        'page': page_obj.number,
        'page_size': paginator.per_page,
        'total_pages': paginator.num_pages,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)

    if not request.user.is_staff and audit_log.user_id != request.user.id:
        return Response({'success': False, 'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    return Response(AuditLogSerializer(audit_log).data)
