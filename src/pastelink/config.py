"""
Configuration for pastelink peer-to-peer chat and file transfer
"""
import os
import sys
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Channel Settings
CHANNEL_LABEL = "chat"
CHUNK_SIZE = 16000  # Safely under common data channel message limits
MAX_CHUNK_SIZE = 256 * 1024
BUFFERED_AMOUNT_LOW_THRESHOLD = 0  # Next chunk waits until the previous one left the buffer

# ICE servers (none by default: host candidates only, like a bare RTCPeerConnection)
ICE_SERVERS = []

# Paths
if os.name == 'nt':  # Windows
    TEMP_DIR = Path(os.environ.get('TEMP', 'C:/Temp')) / 'pastelink'
else:  # macOS/Linux
    TEMP_DIR = Path('/tmp/pastelink')

TEMP_DIR.mkdir(parents=True, exist_ok=True)

DOWNLOAD_DIR = Path.home() / 'Downloads' / 'pastelink'

# Presentation
PROGRESS_STEP = 20  # Print transfer progress every N percent

# Logging
LOG_LEVEL = "INFO"
LOG_FILE = TEMP_DIR / "pastelink.log"


def get_data_dir() -> Path:
    """Platform-specific directory for user data (config.json)"""
    if sys.platform == 'win32':
        base = Path(os.environ.get('LOCALAPPDATA', Path.home() / 'AppData' / 'Local'))
    elif sys.platform == 'darwin':
        base = Path.home() / 'Library' / 'Application Support'
    else:
        base = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config'))
    d = base / 'pastelink'
    d.mkdir(parents=True, exist_ok=True)
    return d
