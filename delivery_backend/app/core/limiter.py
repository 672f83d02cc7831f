"""Shared slowapi limiter; routers use the same instance for @limiter.limit."""
from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
