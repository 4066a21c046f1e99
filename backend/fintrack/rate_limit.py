from slowapi import Limiter
from slowapi.util import get_remote_address

# Shared so routers can decorate endpoints without importing the app
limiter = Limiter(key_func=get_remote_address)
