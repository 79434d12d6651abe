"""Finance Engine: агрегация финансового состояния пользователя."""

__version__ = "1.0.0"
