"""Shared: telemetry and cross-cutting helpers used by every layer."""
