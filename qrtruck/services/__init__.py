"""
                        Services Module

Contains all business logic services with the hybrid architecture pattern.
External integrations have Mock (development) and Real (production)
implementations selected by ENV_MODE.

Services:
    - pricing: Platform fee, provincial tax and totals
    - pickup: Pickup codes and pickup confirmation
    - orders: Order numbers and order creation after payment
    - payment: Stripe payments and Connect payouts
    - menu_parser: Gemini menu text parsing
    - qr: Truck QR codes
    - reports: Tax audit and dashboard statistics
    - report_exporter: Lock-guarded Excel exports
    - webhooks: Payment provider events
"""

from qrtruck.services.report_exporter import ReportExporter

__all__ = ["ReportExporter"]
