#
# Anything that touches the filesystem is keyed by an instance ID taken straight
# from the URL, so IDs are checked here before they get anywhere near a path.
#
# Requests are rate limited per remote address. Backup and restore are the
# expensive endpoints, but the limiter is applied to every route alike.
#
from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

import string

from cratepanel.core.config import Config
from cratepanel.core.errors import InvalidIdentifier
from cratepanel.core.responses import respond

# Constant showing a list of valid characters for an instance ID
NAME_CHARS = string.ascii_letters + string.digits + '_-'

MAX_ID_LENGTH = 64

rate_limiter = Limiter(
    key_func=get_remote_address,
    default_limits=Config.rate_limits.rules,
    enabled=Config.rate_limits.enabled
)


def validate_instance_id(instance_id: str) -> str:
    """
    Make sure an instance ID is safe to use as a directory name.
    :param instance_id: The untrusted ID
    :return: The same ID, if it passed
    :raises InvalidIdentifier: If the ID is empty, too long, or contains anything outside NAME_CHARS
    """
    if not isinstance(instance_id, str) or not instance_id:
        raise InvalidIdentifier("Instance ID is empty")

    if len(instance_id) > MAX_ID_LENGTH:
        raise InvalidIdentifier("Instance ID is longer than %i characters" % MAX_ID_LENGTH)

    if not all(c in NAME_CHARS for c in instance_id):
        raise InvalidIdentifier("Instance ID contains forbidden characters")

    # Would be read as an option by anything shelling out
    if instance_id.startswith('-'):
        raise InvalidIdentifier("Instance ID can't start with '-'")

    return instance_id


# noinspection PyUnusedLocal
def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return respond('rate_limited', limit=str(exc.detail))
