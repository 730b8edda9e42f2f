from django.urls import path
from . import views

urlpatterns = [
    path('inbound-shipments/', views.inbound_list_create, name='inbound-list-create'),
    path('inbound-shipments/bulk/', views.inbound_bulk_create, name='inbound-bulk-create'),
    path('inbound-shipments/<int:pk>/', views.inbound_detail, name='inbound-detail'),
    path('outbound-shipments/', views.outbound_list_create, name='outbound-list-create'),
    path('outbound-shipments/bulk/', views.outbound_bulk_create, name='outbound-bulk-create'),
    path('outbound-shipments/<int:pk>/', views.outbound_detail, name='outbound-detail'),
]
