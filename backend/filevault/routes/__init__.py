from .files import router as files
from .share_links import public_router as shared
from .share_links import router as share_links
