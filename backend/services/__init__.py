from .errors import LoopcamError
from .gcs import get_bucket_name, list_videos

__all__ = ["LoopcamError", "get_bucket_name", "list_videos"]
