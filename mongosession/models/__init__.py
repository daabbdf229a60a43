from .session import ErrorPolicy, SessionDoc

__all__ = ["ErrorPolicy", "SessionDoc"]
