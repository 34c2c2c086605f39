"""
Chunked Upload - resumable chunked file upload engine

Clients split large files into fixed-size chunks, upload them in any order
with retries, query progress to resume after an interruption, and ask the
server to merge the chunks into the final artifact exactly once.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
