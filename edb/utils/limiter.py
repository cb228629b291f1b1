from slowapi import Limiter
from slowapi.util import get_remote_address

from edb.config import settings

# Rate limiter pour les endpoints d'authentification (limite par IP)
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
