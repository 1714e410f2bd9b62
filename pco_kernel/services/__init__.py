"""Kernel services: activity log and order-number allocation."""
