"""Webhook providers: one decoder/transformer per source platform."""
