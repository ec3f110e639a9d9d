"""
                QR Truck Ordering Platform

Scan-to-order backend for food trucks: public menus behind a QR code,
hosted card payments, pickup codes, merchant dashboards and admin reports.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
