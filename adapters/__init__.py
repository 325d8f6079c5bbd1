"""Adapters binding the clinical core to concrete storage."""
