from .post import Post
from .moderation import ModerationReport, QuarantinedItem
