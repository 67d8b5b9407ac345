"""Logging and metrics for kubesync."""
