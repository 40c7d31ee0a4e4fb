"""Revenue-share commission ledger and Stripe webhook reconciliation service"""
