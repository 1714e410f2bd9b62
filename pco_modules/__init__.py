"""
PCO Modules.

Thin orchestration layers over the kernel, engines and services:

- private_client_orders: order state machine, workflow graph, guard sets
- bulk_pricing: spreadsheet-driven catalogue repricing sessions and export
"""

from pco_modules import bulk_pricing, private_client_orders

__all__ = ["bulk_pricing", "private_client_orders"]
