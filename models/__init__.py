from .user import User
from .portfolio import Portfolio
from .trade import Trade
from .user_settings import UserSettings
