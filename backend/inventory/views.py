"""
StockItem registry endpoints

The list endpoint is paginated and cached; every write invalidates the cached
pages once its transaction commits.
"""
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.paginator import Paginator
from django.db import IntegrityError, transaction
from django.db.models import ProtectedError
from django.shortcuts import get_object_or_404
from backend.core.cache_utils import get_cached_stock_list, cache_stock_list, invalidate_stock_cache
from backend.core.exceptions import ConflictError
from backend.core.utils import create_audit_log
from .filters import StockItemFilter
from .models import StockItem
from .serializers import StockItemSerializer, StockItemCreateSerializer
import logging

logger = logging.getLogger(__name__)


def _stock_list(request):
    try:
        page = int(request.query_params.get('page', 1))
        limit = int(request.query_params.get('limit', 20))
    except ValueError:
        return Response({'success': False, 'error': 'page and limit must be integers'}, status=status.HTTP_400_BAD_REQUEST)
    limit = max(1, min(limit, 500))

    filters_dict = {key: request.query_params.get(key) for key in sorted(request.query_params.keys())}
    filters_dict.update(page=page, limit=limit)

    cached_data, cache_key = get_cached_stock_list(filters_dict)
    if cached_data is not None:
        logger.debug("Stock list cache HIT")
        response = Response(cached_data)
        response['X-Cache'] = 'HIT'
        return response

    filterset = StockItemFilter(request.query_params, queryset=StockItem.objects.all())
    if not filterset.is_valid():
        return Response({'success': False, 'error': 'Invalid filters', 'details': filterset.errors}, status=status.HTTP_400_BAD_REQUEST)
    queryset = filterset.qs.order_by('sku')

    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)
    serializer = StockItemSerializer(page_obj, many=True)

    response_data = {
        'results': serializer.data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    }
    cache_stock_list(cache_key, response_data)

    response = Response(response_data)
    response['X-Cache'] = 'MISS'
    return response


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def stock_list_create(request):
    """List stock items or register a new SKU"""
    if request.method == 'GET':
        return _stock_list(request)

    serializer = StockItemCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response({'success': False, 'error': 'Invalid request', 'details': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

    try:
        with transaction.atomic():
            stock_item = serializer.save()
            create_audit_log(
                request=request,
                action='create',
                model_name='StockItem',
                object_id=stock_item.id,
                object_name=stock_item.product_name,
                sku=stock_item.sku,
                changes={
                    'warehouse_code': stock_item.warehouse_code,
                    'on_hand_quantity': stock_item.on_hand_quantity,
                },
            )
            transaction.on_commit(invalidate_stock_cache)
    except IntegrityError:
        # Registered concurrently after validation
        return Response({'success': False, 'error': 'Invalid request', 'details': {'sku': ['SKU already exists']}}, status=status.HTTP_400_BAD_REQUEST)

    logger.info(f"Registered SKU {stock_item.sku} with opening balance {stock_item.on_hand_quantity}")
    return Response(StockItemSerializer(stock_item).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def stock_detail(request, sku):
    """Retrieve, update or delete a stock item by SKU"""
    stock_item = get_object_or_404(StockItem, sku=sku)

    if request.method == 'GET':
        return Response(StockItemSerializer(stock_item).data)

    if request.method in ('PUT', 'PATCH'):
        with transaction.atomic():
            stock_item = StockItem.objects.select_for_update().get(pk=stock_item.pk)
            serializer = StockItemSerializer(stock_item, data=request.data, partial=request.method == 'PATCH')
            if not serializer.is_valid():
                return Response({'success': False, 'error': 'Invalid request', 'details': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

            stock_item = serializer.save()
            create_audit_log(
                request=request,
                action='update',
                model_name='StockItem',
                object_id=stock_item.id,
                object_name=stock_item.product_name,
                sku=stock_item.sku,
                changes={key: str(value) for key, value in serializer.validated_data.items()},
            )
            transaction.on_commit(invalidate_stock_cache)
        return Response(StockItemSerializer(stock_item).data)

    # DELETE
    stock_item_id = stock_item.id
    try:
        with transaction.atomic():
            stock_item.delete()
            create_audit_log(
                request=request,
                action='delete',
                model_name='StockItem',
                object_id=stock_item_id,
                object_name=stock_item.product_name,
                sku=sku,
            )
            transaction.on_commit(invalidate_stock_cache)
    except ProtectedError:
        raise ConflictError(f"SKU {sku} is referenced by shipments and cannot be deleted")

    return Response({'success': True, 'message': 'Product deleted successfully'})
