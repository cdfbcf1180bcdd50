"""
Nexus Mods integration package.

Provides API access, NXM protocol handling, downloads, and the nxm:// install
flow for the Nexus Mods ecosystem.
"""

from .nexus_api import NexusAPI, NexusAPIError, RateLimitError
from .nxm_handler import NxmHandler, NxmLink, NxmIPC
from .nexus_download import NexusDownloader, DownloadError, download_url

__all__ = ["NexusAPI", "NexusAPIError", "RateLimitError", "NxmHandler", "NxmLink",
           "NxmIPC", "NexusDownloader", "DownloadError", "download_url"]
