from django.urls import path
from .views import stock_list_create, stock_detail

urlpatterns = [
    path('inventory/', stock_list_create, name='stock-list-create'),
    path('inventory/<str:sku>/', stock_detail, name='stock-detail'),
]
