from django.urls import path
from . import views

app_name = "orders"

urlpatterns = [
    path("orders/ping/", views.OrdersPingView.as_view(), name="ping"),
    path("cart/", views.CartView.as_view(), name="cart"),
    path("cart/entries/", views.CartEntriesView.as_view(), name="cart-entries"),
    path("cart/entries/<str:entry_id>/", views.CartEntryDetailView.as_view(), name="cart-entry-detail"),
    path("shipping/couriers/", views.ShippingOptionsView.as_view(), name="shipping-couriers"),
    path("checkout/", views.CheckoutView.as_view(), name="checkout"),
    path("mercadopago/", views.PreferenceView.as_view(), name="preference"),
    path("webhook/mercadopago/", views.MercadoPagoWebhookView.as_view(), name="webhook-mercadopago"),
    path("orders/<str:reference>/", views.OrderDetailView.as_view(), name="order-detail"),
    path("orders/<str:reference>/payment/", views.OrderPaymentView.as_view(), name="order-payment"),
    path("admin/orders/", views.AdminOrdersView.as_view(), name="admin-orders"),
    path("admin/orders/<str:reference>/", views.AdminOrderDetailView.as_view(), name="admin-order-detail"),
]
