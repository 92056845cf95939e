from ordering.api.routes import maintenance_router, order_router, webhook_router

__all__ = ["maintenance_router", "order_router", "webhook_router"]
