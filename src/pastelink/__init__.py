"""pastelink - peer-to-peer chat and file transfer with copy-paste signaling"""
__version__ = "0.1.0"
