from django.urls import path

from shop.api import views

urlpatterns = [
    path("api/customer/create-payment-intent", views.create_payment_intent, name="create-payment-intent"),
    path("api/customer/confirm-payment", views.confirm_payment, name="confirm-payment"),
    path("api/customer/payment-webhook", views.stripe_webhook, name="payment-webhook-legacy"),
    path("api/customer/order/<str:order_id>", views.order_detail, name="order-detail"),
    path("api/customer/orders", views.order_list, name="order-list"),
    path("api/customer/orders/<str:order_id>/cancel", views.cancel_order, name="order-cancel"),
    path("api/admin/orders/<str:order_id>/status", views.update_order_status, name="order-status"),
    path("webhook/stripe", views.stripe_webhook, name="stripe-webhook"),
    path("graphql/", views.graphql_view, name="graphql"),
    path("health", views.health, name="health"),
]
