"""
URL configuration for the storefront.

- Order ViewSet routes (list, detail, cancel, update_status, tracking)
- Checkout, payment verification, coupon preview and shipping quote endpoints
- Admin interface
"""

from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from coupons.views import preview_coupon
from orders.views import CheckoutView, OrderViewSet, PaymentVerificationView, ShippingQuoteView

router = DefaultRouter()
router.register(r'orders', OrderViewSet, basename='order')

urlpatterns = [
    path('admin/', admin.site.urls),

    path('api/', include(router.urls)),

    path('api/checkout/', CheckoutView.as_view(), name='checkout'),
    path('api/checkout/verify-payment/', PaymentVerificationView.as_view(), name='verify-payment'),
    path('api/checkout/coupon/', preview_coupon, name='coupon-preview'),
    path('api/checkout/shipping/', ShippingQuoteView.as_view(), name='shipping-quote'),
]
