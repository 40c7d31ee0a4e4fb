"""Prometheus metrics for the application"""
from prometheus_client import REGISTRY, Counter


def _counter(name, documentation, labelnames=()):
    # Re-importing the module (tests, reloads) must not register twice
    try:
        return Counter(name, documentation, labelnames)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


# Webhook metrics
webhook_events_counter = _counter(
    'revshare_webhook_events_total',
    'Total number of Stripe webhook events by type and outcome',
    ['event_type', 'outcome']
)

# Ledger metrics
purchases_created_counter = _counter(
    'revshare_purchases_created_total',
    'Total number of purchases recorded',
    ['attributed']
)

commission_adjustments_counter = _counter(
    'revshare_commission_adjustments_total',
    'Total number of commission adjustments recorded',
    ['reason']
)

# Side effects
side_effect_failures_counter = _counter(
    'revshare_side_effect_failures_total',
    'Best-effort side effects that failed (email, realtime publish)',
    ['kind']
)

# Background jobs
maturity_runs_counter = _counter(
    'revshare_commission_maturity_runs_total',
    'Total number of commission maturity job runs',
    ['status']
)

matured_commissions_counter = _counter(
    'revshare_matured_commissions_total',
    'Total number of purchases promoted out of the refund window'
)
