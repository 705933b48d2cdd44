"""In-process stub for the preference gateway port.

No network calls: tests and local development get deterministic
preferences without a provider account.
"""

import uuid

from .domain import Preference, PreferenceGatewayPort, PreferenceRequest
from .errors import PaymentProviderError


class PreferenceGatewayStub(PreferenceGatewayPort):
    """Stub implementation of ``PreferenceGatewayPort``.

    Refuses requests without items or with a non-positive price or
    quantity (the provider does the same), otherwise returns a random
    preference id and a fake checkout URL carrying it.
    """

    checkout_base = "https://sandbox.casafunko.local/checkout"

    def create_preference(self, request: PreferenceRequest) -> Preference:
        if not request.items or any(i.unit_price <= 0 or i.quantity <= 0 for i in request.items):
            raise PaymentProviderError("preference without billable items", status_code=400)
        pref_id = f"pref-{uuid.uuid4().hex[:16]}"
        return Preference(id=pref_id, init_point=f"{self.checkout_base}?pref_id={pref_id}")
