"""Workflow services: capture, editing, batching and orchestration."""
