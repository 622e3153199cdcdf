from .tokens import StaticTokenProvider, TokenProvider, token_expiry

__all__ = ["StaticTokenProvider", "TokenProvider", "token_expiry"]
