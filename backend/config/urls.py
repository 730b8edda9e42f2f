"""
URL configuration for the warehouse ledger backend.

Every app mounts its routes under ``api/v1/``; see the app ``urls.py``
modules for the individual endpoints.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Warehouse Ledger Admin Panel"
admin.site.site_title = "Warehouse Ledger Admin Portal"
admin.site.index_title = "Inventory and shipment administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.inventory.urls')),
    path('api/v1/', include('backend.shipments.urls')),
]
