from .archive import extract_member
from .listing import list_directory, member_source
from .remote import fetch_remote_file, fetch_url
from .resolver import SourceResolver

__all__ = [
    "SourceResolver",
    "extract_member",
    "fetch_remote_file",
    "fetch_url",
    "list_directory",
    "member_source",
]
