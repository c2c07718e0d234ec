from .file import File
from .share_link import ShareLink

__all__ = ["File", "ShareLink"]
