"""System checks for the webhook verification posture.

Whether unsigned notifications are accepted is a deployment decision, so
``manage.py check --deploy`` (and every ``runserver``) surfaces it instead
of leaving it as a silent default.
"""

from django.conf import settings
from django.core import checks

VERIFICATION_MODES = ("tolerant", "strict")


@checks.register(checks.Tags.security)
def check_webhook_verification(app_configs=None, **kwargs):
    mode = getattr(settings, "MP_WEBHOOK_VERIFICATION", "tolerant")
    secret = getattr(settings, "MP_WEBHOOK_SECRET", "")
    errors = []

    if mode not in VERIFICATION_MODES:
        errors.append(
            checks.Error(
                f"MP_WEBHOOK_VERIFICATION must be one of {VERIFICATION_MODES}, got {mode!r}.",
                id="orders.E001",
            )
        )
    elif mode == "strict" and not secret:
        errors.append(
            checks.Error(
                "MP_WEBHOOK_VERIFICATION is 'strict' but MP_WEBHOOK_SECRET is empty; every webhook will be rejected.",
                id="orders.E002",
            )
        )
    elif mode == "tolerant" and not settings.DEBUG:
        errors.append(
            checks.Warning(
                "Webhook signatures are skipped when the header or secret is missing.",
                hint="Set MP_WEBHOOK_SECRET and MP_WEBHOOK_VERIFICATION=strict in production.",
                id="orders.W001",
            )
        )
    return errors
