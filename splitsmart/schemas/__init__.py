from splitsmart.schemas.base import *  # noqa: F401,F403
