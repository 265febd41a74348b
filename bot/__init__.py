from .handlers import router

__all__ = ["router"]
