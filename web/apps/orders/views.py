"""HTTP views for the orders app.

Views are thin: they validate the request with pydantic, call a service
obtained from ``providers`` and translate ``OrderError`` into JSON. The
services never raise across this boundary for expected failures, and the
error body always carries a machine-checkable ``error`` code.

Endpoints:

- Cart (session scoped): summary, add entry, remove entry, clear.
- Shipping options per region.
- Checkout: cart + shipping form -> pending order -> provider preference.
  Supports ``Idempotency-Key``: the first request's response is stored and
  replayed for retries with the same body; a different body with the same
  key is a 409.
- Preference (re)creation for an existing pending order.
- Provider webhook.
- Order read-back and payment-id attachment for the return pages.
- Staff-only order list and manual updates.
"""
from dataclasses import asdict

from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .cart import Cart, ProductSnapshot, SessionCartStore
from .domain import OrderItem, Payer
from .errors import OrderError
from .idempotency import finalize, get_or_create_idempotent
from .schemas import (
    AdminOrderUpdateDTO,
    AttachPaymentDTO,
    CartEntryIn,
    CheckoutIn,
    CreatePreferenceDTO,
    OrderReadDTO,
)
from .shipping import Customer, ShippingSelection
from .webhooks import SIGNATURE_HEADER

_carts = SessionCartStore()


def _invalid_payload(e: ValidationError) -> Response:
    return Response({"error": "INVALID_PAYLOAD", "detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)


def _error(e: OrderError) -> Response:
    return Response(e.as_body(), status=e.http_status)


def _order_body(order) -> dict:
    return OrderReadDTO.from_order(order).model_dump(mode="json")


class OrdersPingView(APIView):
    """Liveness endpoint used by smoke tests."""

    def get(self, request):
        return Response({"ok": True})


# ---- Cart ----
class CartView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "cart"

    def get(self, request):
        return Response(_carts.load(request.session).summary().as_dict())

    def delete(self, request):
        _carts.clear(request.session)
        return Response(Cart().summary().as_dict())


class CartEntriesView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "cart"

    def post(self, request):
        """Add one unit of a product. Stock is not checked here."""
        try:
            dto = CartEntryIn.model_validate(request.data)
        except ValidationError as e:
            return _invalid_payload(e)

        cart = _carts.load(request.session)
        entry = cart.add_entry(ProductSnapshot(**dto.model_dump()))
        _carts.save(request.session, cart)
        return Response(
            {"entry": asdict(entry), "cart": cart.summary().as_dict()},
            status=status.HTTP_201_CREATED,
        )


class CartEntryDetailView(APIView):
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "cart"

    def delete(self, request, entry_id: str):
        """Remove exactly one entry; unknown ids are a no-op."""
        cart = _carts.load(request.session)
        removed = cart.remove_entry(entry_id)
        if removed:
            _carts.save(request.session, cart)
        return Response({"removed": removed, "cart": cart.summary().as_dict()})


# ---- Shipping ----
class ShippingOptionsView(APIView):
    def get(self, request):
        region = request.GET.get("region")
        resolver = providers.get_shipping_resolver()
        couriers = resolver.couriers_for(region)
        if not couriers:
            return Response({"error": "INVALID_REGION"}, status=status.HTTP_400_BAD_REQUEST)
        return Response(
            {
                "region": region,
                "couriers": [asdict(c) for c in couriers],
                "locked_fields": resolver.locked_fields(region),
            }
        )


# ---- Checkout ----
class CheckoutView(APIView):
    """Turn the session cart into a pending order and a provider preference.

    Responses:
        - 201 ``{reference, status, total_amount, preference_id, init_point}``.
        - 400 ``INVALID_PAYLOAD``, ``EMPTY_CART`` or ``SHIPPING_INVALID``
          (with ``fields``).
        - 422 ``OVER_STOCK`` (with ``lines``).
        - 500 ``ORDER_NOT_PERSISTED`` (nothing written, provider not
          called) or ``PAYMENT_SETUP_FAILED`` (order kept as pending, its
          ``reference`` returned for a retry through the preference
          endpoint).
        - 409 ``IDEMPOTENCY_CONFLICT`` / ``IDEMPOTENCY_IN_PROGRESS``.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout"

    def post(self, request):
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        try:
            dto = CheckoutIn.model_validate(request.data)
        except ValidationError as e:
            return _invalid_payload(e)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, request.data)
            except ValueError:
                return Response({"error": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                if not rec.response_status:
                    return Response({"error": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        cart = _carts.load(request.session)
        selection = ShippingSelection(
            region=dto.region,
            courier_id=dto.courier_id,
            customer=Customer(**dto.customer.model_dump()),
        )
        try:
            result = providers.get_checkout_service().checkout(cart.summary(), selection)
        except OrderError as e:
            if rec:
                finalize(rec, e.http_status, e.as_body())
            return _error(e)

        # 4) Response; the cart is spent once an order exists
        _carts.clear(request.session)
        body = {
            "reference": result.order.reference,
            "status": result.order.status.value,
            "total_amount": result.order.total_amount,
            "preference_id": result.preference.id,
            "init_point": result.preference.init_point,
        }
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=result.order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class PreferenceView(APIView):
    """Create the provider preference of an existing pending order.

    Used to retry after a failed payment setup; the persisted order lines
    are billed, never the client's.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout"

    def post(self, request):
        try:
            dto = CreatePreferenceDTO.model_validate(request.data)
        except ValidationError as e:
            return _invalid_payload(e)

        items = None
        if dto.items is not None:
            items = [OrderItem(product_id="", name=i.name, unit_price=i.price, quantity=i.qty) for i in dto.items]
        payer = Payer(**dto.payer.model_dump()) if dto.payer else None

        try:
            result = providers.get_preference_service().create_for_reference(dto.reference, payer=payer, items=items)
        except OrderError as e:
            return _error(e)
        return Response({"init_point": result.preference.init_point, "preference_id": result.preference.id})


# ---- Webhook ----
class MercadoPagoWebhookView(APIView):
    """Provider notifications. Unauthenticated; trust comes from the HMAC."""

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        # Raw bytes: the signature covers the body exactly as sent.
        raw_body = request.body
        result = providers.get_webhook_reconciler().handle(raw_body, request.headers.get(SIGNATURE_HEADER))
        return Response(result.body, status=result.http_status)


# ---- Orders ----
class OrderDetailView(APIView):
    """Order state for the success / pending / failure pages."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, reference: str):
        try:
            order = providers.get_order_service().get(reference)
        except OrderError as e:
            return _error(e)
        return Response(_order_body(order))


class OrderPaymentView(APIView):
    """Attach the provider payment id reported on the redirect back."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def post(self, request, reference: str):
        try:
            dto = AttachPaymentDTO.model_validate(request.data)
        except ValidationError as e:
            return _invalid_payload(e)
        try:
            order = providers.get_order_service().attach_payment(reference, dto.payment_id)
        except OrderError as e:
            return _error(e)
        return Response(_order_body(order))


class AdminOrdersView(APIView):
    permission_classes = [IsAdminUser]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_admin"

    def get(self, request):
        try:
            page = max(1, int(request.GET.get("page", 1)))
            page_size = min(100, max(1, int(request.GET.get("page_size", 20))))
        except ValueError:
            return Response({"error": "INVALID_PAGINATION"}, status=status.HTTP_400_BAD_REQUEST)
        count, number, orders = providers.get_order_service().list_orders(page, page_size, request.GET.get("status"))
        return Response(
            {
                "count": count,
                "page": number,
                "page_size": page_size,
                "results": [_order_body(o) for o in orders],
            }
        )


class AdminOrderDetailView(APIView):
    """Manual status transitions and shipping metadata."""

    permission_classes = [IsAdminUser]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_admin"

    def patch(self, request, reference: str):
        try:
            dto = AdminOrderUpdateDTO.model_validate(request.data)
        except ValidationError as e:
            return _invalid_payload(e)
        try:
            order = providers.get_order_service().admin_update(
                reference,
                status=dto.status,
                tracking_number=dto.tracking_number,
                courier=dto.courier,
            )
        except OrderError as e:
            return _error(e)
        return Response(_order_body(order))
