from inventory.api.routes import inventory_router, reservation_router

__all__ = ["inventory_router", "reservation_router"]
