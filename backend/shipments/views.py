"""
Inbound and outbound shipment endpoints

Writes go through backend.shipments.services; ledger errors propagate and are
rendered by the project exception handler.
"""
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.paginator import Paginator
from django.shortcuts import get_object_or_404
from backend.core.exceptions import ShipmentValidationError
from . import services
from .filters import InboundShipmentFilter, OutboundShipmentFilter
from .models import InboundShipment, OutboundShipment
from .serializers import InboundShipmentSerializer, OutboundShipmentSerializer


def _paginated_list(request, filter_class, queryset, serializer_class):
    try:
        page = int(request.query_params.get('page', 1))
        limit = int(request.query_params.get('limit', 20))
    except ValueError:
        return Response({'success': False, 'error': 'page and limit must be integers'}, status=status.HTTP_400_BAD_REQUEST)
    limit = max(1, min(limit, 500))

    filterset = filter_class(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response({'success': False, 'error': 'Invalid filters', 'details': filterset.errors}, status=status.HTTP_400_BAD_REQUEST)

    paginator = Paginator(filterset.qs, limit)
    page_obj = paginator.get_page(page)
    serializer = serializer_class(page_obj, many=True)
    return Response({
        'results': serializer.data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    })


def _bulk_items(request):
    """Bulk bodies are either a JSON list or an object with an ``items`` list"""
    data = request.data
    if isinstance(data, dict):
        if 'items' not in data:
            raise ShipmentValidationError('Items must be a non-empty list')
        data = data['items']
    return data


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def inbound_list_create(request):
    """List inbound shipments or record a new one"""
    if request.method == 'GET':
        return _paginated_list(request, InboundShipmentFilter, InboundShipment.objects.all(), InboundShipmentSerializer)

    shipment = services.create_inbound(request.data, user=request.user)
    return Response(InboundShipmentSerializer(shipment).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def inbound_bulk_create(request):
    """Record a batch of inbound shipments; all or nothing"""
    shipments = services.bulk_create_inbound(_bulk_items(request), user=request.user)
    return Response({
        'success': True,
        'count': len(shipments),
        'results': InboundShipmentSerializer(shipments, many=True).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def inbound_detail(request, pk):
    """Retrieve, update or delete an inbound shipment"""
    if request.method == 'GET':
        shipment = get_object_or_404(InboundShipment, pk=pk)
        return Response(InboundShipmentSerializer(shipment).data)

    if request.method in ('PUT', 'PATCH'):
        shipment = services.update_inbound(pk, request.data, partial=request.method == 'PATCH', user=request.user)
        return Response(InboundShipmentSerializer(shipment).data)

    services.delete_inbound(pk, user=request.user)
    return Response({'success': True, 'message': 'Inbound shipment deleted successfully'})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def outbound_list_create(request):
    """List outbound shipments or place a new order"""
    if request.method == 'GET':
        return _paginated_list(request, OutboundShipmentFilter, OutboundShipment.objects.all(), OutboundShipmentSerializer)

    shipment = services.create_outbound(request.data, user=request.user)
    return Response(OutboundShipmentSerializer(shipment).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def outbound_bulk_create(request):
    """Place a batch of outbound orders; all or nothing"""
    shipments = services.bulk_create_outbound(_bulk_items(request), user=request.user)
    return Response({
        'success': True,
        'count': len(shipments),
        'results': OutboundShipmentSerializer(shipments, many=True).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def outbound_detail(request, pk):
    """Retrieve, update or delete an outbound shipment"""
    if request.method == 'GET':
        shipment = get_object_or_404(OutboundShipment, pk=pk)
        return Response(OutboundShipmentSerializer(shipment).data)

    if request.method in ('PUT', 'PATCH'):
        shipment = services.update_outbound(pk, request.data, partial=request.method == 'PATCH', user=request.user)
        return Response(OutboundShipmentSerializer(shipment).data)

    services.delete_outbound(pk, user=request.user)
    return Response({'success': True, 'message': 'Outbound shipment deleted successfully'})
