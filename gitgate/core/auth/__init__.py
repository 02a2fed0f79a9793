from .gate import AuthGate

__all__ = ["AuthGate"]
