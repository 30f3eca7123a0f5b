from studytree.media.fetcher import MediaFetcher
from studytree.media.transcoder import Transcoder

__all__ = ["MediaFetcher", "Transcoder"]
