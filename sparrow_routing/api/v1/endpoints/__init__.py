from sparrow_routing.api.v1.endpoints import routes

__all__ = [
    "routes",
]
