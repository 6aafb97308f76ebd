from .poll_model import Poll
from .poll_options_model import PollOption
from .user_model import UserModel
from .vote_model import Vote

__all__ = ['UserModel', 'Poll', 'PollOption', 'Vote']
