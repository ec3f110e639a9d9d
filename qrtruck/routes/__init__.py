"""API route groups."""

from qrtruck.routes import admin, auth, menu, orders, pages, payments, trucks

all_routers = [
    auth.router,
    trucks.router,
    menu.router,
    orders.router,
    payments.router,
    admin.router,
    pages.router,
]

__all__ = ["all_routers"]
